from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any


def now_ms() -> int:
    return int(time.time() * 1000)


def _drop_none(payload: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in payload.items() if v is not None}


@dataclass(frozen=True)
class User:
    id: str
    name: str
    auth_method: str
    email: str | None = None
    phone: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "name": self.name,
                "email": self.email,
                "phone": self.phone,
                "authMethod": self.auth_method,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> User:
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            auth_method=str(data.get("authMethod", "email")),
            email=data.get("email"),
            phone=data.get("phone"),
        )


@dataclass(frozen=True)
class PaymentRecord:
    id: str
    date: int
    amount: float
    method: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "date": self.date, "amount": self.amount, "method": self.method}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PaymentRecord:
        return cls(
            id=str(data.get("id", "")),
            date=int(data.get("date", 0)),
            amount=data.get("amount", 0),
            method=str(data.get("method", "")),
        )


@dataclass(frozen=True)
class DownloadRecord:
    id: str
    item_title: str
    item_author: str
    date: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "itemTitle": self.item_title,
            "itemAuthor": self.item_author,
            "date": self.date,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DownloadRecord:
        return cls(
            id=str(data.get("id", "")),
            item_title=str(data.get("itemTitle", "")),
            item_author=str(data.get("itemAuthor", "")),
            date=int(data.get("date", 0)),
        )


@dataclass(frozen=True)
class UploadedFile:
    """The active file context that responses are grounded on."""

    name: str
    type: str
    content: str
    category: str
    original_image: str | None = None
    upload_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "name": self.name,
                "type": self.type,
                "content": self.content,
                "category": self.category,
                "originalImage": self.original_image,
                "uploadId": self.upload_id,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UploadedFile:
        return cls(
            name=str(data.get("name", "")),
            type=str(data.get("type", "")),
            content=str(data.get("content", "")),
            category=str(data.get("category", "text")),
            original_image=data.get("originalImage"),
            upload_id=data.get("uploadId"),
        )


@dataclass(frozen=True)
class UploadRecord:
    id: str
    name: str
    type: str
    size: int
    date: int
    category: str
    content: str | None = None
    original_image: str | None = None

    @property
    def has_content(self) -> bool:
        return bool(self.content)

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "name": self.name,
                "type": self.type,
                "size": self.size,
                "date": self.date,
                "content": self.content,
                "category": self.category,
                "originalImage": self.original_image,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UploadRecord:
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            type=str(data.get("type", "application/octet-stream")),
            size=int(data.get("size", 0)),
            date=int(data.get("date", 0)),
            category=str(data.get("category", "text")),
            content=data.get("content"),
            original_image=data.get("originalImage"),
        )


@dataclass(frozen=True)
class GroundingLink:
    title: str
    uri: str
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({"title": self.title, "uri": self.uri, "source": self.source})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GroundingLink:
        return cls(title=str(data.get("title", "")), uri=str(data.get("uri", "")), source=data.get("source"))


@dataclass(frozen=True)
class GeneratedMedia:
    type: str
    url: str
    mime_type: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "url": self.url, "mimeType": self.mime_type}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GeneratedMedia:
        return cls(
            type=str(data.get("type", "image")),
            url=str(data.get("url", "")),
            mime_type=str(data.get("mimeType", "")),
        )


@dataclass(frozen=True)
class Message:
    role: str
    text: str
    attachment: str | None = None
    attachment_type: str | None = None
    grounding_links: tuple[GroundingLink, ...] = ()
    is_error: bool = False
    generated_media: GeneratedMedia | None = None
    model_mode: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"role": self.role, "text": self.text}
        if self.attachment is not None:
            payload["attachment"] = self.attachment
        if self.attachment_type is not None:
            payload["attachmentType"] = self.attachment_type
        if self.grounding_links:
            payload["groundingLinks"] = [link.to_dict() for link in self.grounding_links]
        if self.is_error:
            payload["isError"] = True
        if self.generated_media is not None:
            payload["generatedMedia"] = self.generated_media.to_dict()
        if self.model_mode is not None:
            payload["modelMode"] = self.model_mode
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        media = data.get("generatedMedia")
        return cls(
            role="user" if data.get("role") == "user" else "model",
            text=str(data.get("text", "")),
            attachment=data.get("attachment"),
            attachment_type=data.get("attachmentType"),
            grounding_links=tuple(GroundingLink.from_dict(link) for link in data.get("groundingLinks") or []),
            is_error=bool(data.get("isError", False)),
            generated_media=GeneratedMedia.from_dict(media) if isinstance(media, dict) else None,
            model_mode=data.get("modelMode"),
        )


@dataclass
class UserState:
    user: User | None = None
    is_premium: bool = False
    has_paid: bool = False
    premium_expiry_date: int | None = None
    payment_history: list[PaymentRecord] = field(default_factory=list)
    download_history: list[DownloadRecord] = field(default_factory=list)
    upload_history: list[UploadRecord] = field(default_factory=list)
    question_usage: list[int] = field(default_factory=list)
    long_term_memory: str = ""

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "user": self.user.to_dict() if self.user else None,
            "isPremium": self.is_premium,
            "hasPaid": self.has_paid,
            "paymentHistory": [p.to_dict() for p in self.payment_history],
            "downloadHistory": [d.to_dict() for d in self.download_history],
            "uploadHistory": [u.to_dict() for u in self.upload_history],
            "questionUsage": list(self.question_usage),
            "longTermMemory": self.long_term_memory,
        }
        if self.premium_expiry_date is not None:
            payload["premiumExpiryDate"] = self.premium_expiry_date
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserState:
        user = data.get("user")
        return cls(
            user=User.from_dict(user) if isinstance(user, dict) else None,
            is_premium=bool(data.get("isPremium", False)),
            has_paid=bool(data.get("hasPaid", False)),
            premium_expiry_date=data.get("premiumExpiryDate"),
            payment_history=[PaymentRecord.from_dict(p) for p in data.get("paymentHistory") or []],
            download_history=[DownloadRecord.from_dict(d) for d in data.get("downloadHistory") or []],
            upload_history=[UploadRecord.from_dict(u) for u in data.get("uploadHistory") or []],
            question_usage=[int(ts) for ts in data.get("questionUsage") or []],
            long_term_memory=str(data.get("longTermMemory") or ""),
        )


@dataclass
class SessionRecord:
    user_state: UserState = field(default_factory=UserState)
    current_file: UploadedFile | None = None
    messages: list[Message] = field(default_factory=list)
    custom_background: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "userState": self.user_state.to_dict(),
            "currentFile": self.current_file.to_dict() if self.current_file else None,
            "messages": [m.to_dict() for m in self.messages],
            "customBackground": self.custom_background,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionRecord:
        current_file = data.get("currentFile")
        return cls(
            user_state=UserState.from_dict(data.get("userState") or {}),
            current_file=UploadedFile.from_dict(current_file) if isinstance(current_file, dict) else None,
            messages=[Message.from_dict(m) for m in data.get("messages") or [] if isinstance(m, dict)],
            custom_background=data.get("customBackground"),
        )


@dataclass(frozen=True)
class ActionItem:
    id: str
    content: str
    is_completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "content": self.content, "isCompleted": self.is_completed}


@dataclass(frozen=True)
class PlanStep:
    step: str
    details: str
    status: str = "pending"


@dataclass(frozen=True)
class ProjectPlan:
    id: str
    title: str
    steps: tuple[PlanStep, ...] = ()

    def to_markdown(self) -> str:
        lines = [f"**{self.title}**", ""]
        lines.extend(f"- {s.step}: {s.details}" for s in self.steps)
        return "\n".join(lines)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectPlan:
        steps = []
        for raw in data.get("steps") or []:
            if not isinstance(raw, dict):
                continue
            status = str(raw.get("status", "pending"))
            if status not in ("pending", "in-progress", "done"):
                status = "pending"
            steps.append(PlanStep(step=str(raw.get("step", "")), details=str(raw.get("details", "")), status=status))
        return cls(id=str(data.get("id") or f"plan_{now_ms()}"), title=str(data.get("title") or "Project Plan"), steps=tuple(steps))


@dataclass(frozen=True)
class MediaGenerationConfig:
    type: str
    prompt: str
    aspect_ratio: str = "1:1"
    image_size: str = "1K"
    reference_image: str | None = None
