from __future__ import annotations

import asyncio
import dataclasses
import shlex
from pathlib import Path

from loguru import logger

from moa_assistant import auth, payments
from moa_assistant.assistant_config import AssistantConfig
from moa_assistant.commands.router import CommandRouter, command_args
from moa_assistant.constants import MODEL_MODES, PREMIUM_PRICE_KSH, WALLPAPER_PROMPT
from moa_assistant.errors import MoaError, ValidationFailure
from moa_assistant.file_parsing import classify, parse_upload, read_upload
from moa_assistant.library import LibraryCatalog, LibraryItem
from moa_assistant.provider import AssistantProvider
from moa_assistant.providers.common import to_data_url
from moa_assistant.services.session_view import SessionView
from moa_assistant.session.context import SessionContext
from moa_assistant.session.models import (
    ActionItem,
    DownloadRecord,
    GeneratedMedia,
    MediaGenerationConfig,
    Message,
    PaymentRecord,
    User,
    now_ms,
)
from moa_assistant.session.session_store import SaveOutcome, SessionStore
from moa_assistant.session.upload_ledger import RestoreResult

PENDING_TEXT = "Thinking..."
SEND_ERROR_TEXT = "Sorry, I couldn't process that."
LIMIT_REACHED_TEXT = (
    "You've used all {limit} free questions. Unlock premium for KSH {price} with /premium <method> [phone]."
)


class StudyAssistant:
    _LINE_PREFIX = "moa> "

    def __init__(
        self,
        context: SessionContext,
        store: SessionStore,
        provider: AssistantProvider,
        *,
        library: LibraryCatalog | None = None,
        config: AssistantConfig | None = None,
    ):
        config = config or AssistantConfig()
        self._context = context
        self._store = store
        self._provider = provider
        self._library = library
        self._max_text_file_bytes = config.max_text_file_bytes
        self._mode = config.default_mode if config.default_mode in MODEL_MODES else "standard"
        self._pending_message: Message | None = None
        self._pending_attachment: tuple[str, str] | None = None
        self._tasks: list[ActionItem] = []
        self._run_lock = asyncio.Lock()

        self._context.log.set_memory_hook(self._consolidate_memory)
        self._view = SessionView(line_prefix=self._LINE_PREFIX)
        self._command_router = CommandRouter(
            on_help=self._on_help,
            handlers={
                "/upload": self._handle_upload_command,
                "/attach": self._handle_attach_command,
                "/files": self._handle_files_command,
                "/restore": self._handle_restore_command,
                "/delete": self._handle_delete_command,
                "/history": self._handle_history_command,
                "/tasks": self._handle_tasks_command,
                "/plan": self._handle_plan_command,
                "/image": self._handle_media_command,
                "/video": self._handle_media_command,
                "/background": self._handle_background_command,
                "/mode": self._handle_mode_command,
                "/login": self._handle_login_command,
                "/signup": self._handle_signup_command,
                "/google": self._handle_google_command,
                "/reset": self._handle_reset_command,
                "/logout": self._handle_logout_command,
                "/name": self._handle_name_command,
                "/premium": self._handle_premium_command,
                "/usage": self._handle_usage_command,
                "/memory": self._handle_memory_command,
                "/library": self._handle_library_command,
                "/import": self._handle_import_command,
                "/share": self._handle_share_command,
            },
            on_unknown=self._on_unknown_command,
        )

    @property
    def context(self) -> SessionContext:
        return self._context

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def tasks(self) -> list[ActionItem]:
        return list(self._tasks)

    async def run(self, user_input: str) -> None:
        async with self._run_lock:
            if await self._command_router.try_handle(user_input):
                return
            reply = await self.send_message(user_input)
            if reply is not None:
                self._print_lines(self._view.format_message_lines(reply))

    async def send_message(
        self,
        text: str,
        *,
        attachment: str | None = None,
        attachment_type: str | None = None,
    ) -> Message | None:
        """Post a user message and the model's reply. ``None`` when nothing was sent."""
        text = text.strip()
        if attachment is None and self._pending_attachment is not None:
            attachment, attachment_type = self._pending_attachment
        if not text and not attachment:
            return None

        ctx = self._context
        if ctx.usage.is_over_limit(ctx.premium_active()):
            logger.info(f"Free question limit reached ({ctx.usage.count}/{ctx.usage.limit})")
            self._print(LIMIT_REACHED_TEXT.format(limit=ctx.usage.limit, price=PREMIUM_PRICE_KSH))
            return None

        self._pending_attachment = None
        ctx.usage.record_usage()
        user_message = Message(role="user", text=text, attachment=attachment, attachment_type=attachment_type)
        await ctx.log.append(user_message)
        history = ctx.log.messages

        self._pending_message = Message(role="model", text=PENDING_TEXT, model_mode=self._mode)
        await ctx.log.append(self._pending_message)

        try:
            result = await self._provider.generate_response(
                history,
                text,
                ctx.current_file,
                mode=self._mode,
                long_term_memory=ctx.user_state.long_term_memory,
            )
            reply = Message(
                role="model",
                text=result.text,
                grounding_links=tuple(result.grounding_links),
                model_mode=self._mode,
            )
        except MoaError as ex:
            logger.error(f"Response generation failed: {ex}")
            reply = Message(role="model", text=SEND_ERROR_TEXT, is_error=True)
        except Exception:
            logger.exception("Unexpected error while generating a response")
            reply = Message(role="model", text=SEND_ERROR_TEXT, is_error=True)
        finally:
            self._pending_message = None

        ctx.log.replace_last(reply)
        self._persist()
        return reply

    async def _consolidate_memory(self, messages: list[Message], current_memory: str) -> str | None:
        history = [m for m in messages if m is not self._pending_message]
        logger.debug(f"Consolidating long-term memory over {len(history)} message(s)")
        return await self._provider.consolidate_memory(history, current_memory)

    async def upload_file(self, data: bytes, name: str, mime_type: str | None = None) -> Message:
        """Parse an upload, make it the active file and start a new conversation about it."""
        ctx = self._context
        ctx.log.reset()
        try:
            parsed = await parse_upload(
                data, name, mime_type, self._provider, max_text_bytes=self._max_text_file_bytes
            )
        except MoaError as ex:
            logger.warning(f"Upload of {name} failed: {ex}")
            message = Message(role="model", text=f"Error: {ex}", is_error=True)
            ctx.log.reset([message])
            self._persist()
            return message

        record = ctx.ledger.add(parsed.file, parsed.size)
        ctx.current_file = dataclasses.replace(parsed.file, upload_id=record.id)
        message = Message(role="model", text=parsed.intro)
        ctx.log.reset([message])
        self._tasks = []
        self._persist()
        logger.info(f"Active file is now {name} (record {record.id})")
        return message

    async def upload_path(self, path: str | Path) -> Message:
        try:
            data, name, mime_type = read_upload(path)
        except MoaError as ex:
            message = Message(role="model", text=f"Error: {ex}", is_error=True)
            self._context.log.reset([message])
            self._persist()
            return message
        return await self.upload_file(data, name, mime_type)

    async def restore_upload(self, record_id: str) -> RestoreResult:
        ctx = self._context
        result = ctx.ledger.restore(record_id)
        if not result.ok or result.file is None:
            logger.info(f"Restore of {record_id} refused: {result.reason}")
            return result

        ctx.current_file = result.file
        await ctx.log.append(
            Message(
                role="model",
                text=(
                    f'🔄 **Context Restored**: I\'ve loaded "{result.file.name}" back into our session. '
                    "What would you like to know about it?"
                ),
            )
        )
        self._persist()
        return result

    def delete_upload(self, record_id: str) -> bool:
        removed = self._context.ledger.remove(record_id)
        if removed:
            self._persist()
        return removed

    def attach(self, path: str | Path) -> str:
        """Stage a media file to go with the next message. Returns its attachment type."""
        data, name, mime_type = read_upload(path)
        kind = classify(name, mime_type)
        if kind not in ("image", "video", "audio"):
            raise ValidationFailure(f"{name} is not an image, video or audio file", field="attachment")
        if not data:
            raise ValidationFailure(f"{name} is empty", field="attachment")
        self._pending_attachment = (to_data_url(data, mime_type), kind)
        return kind

    async def extract_tasks(self) -> list[ActionItem]:
        self._tasks = await self._provider.extract_tasks(self._context.current_file, self._context.log.messages)
        return list(self._tasks)

    def toggle_task(self, index: int) -> ActionItem:
        task = self._tasks[index]
        self._tasks[index] = dataclasses.replace(task, is_completed=not task.is_completed)
        return self._tasks[index]

    async def create_plan(self, goal: str) -> Message:
        goal = goal.strip()
        if not goal:
            raise ValidationFailure("Please type a goal first (e.g. 'Plan a startup')", field="goal")
        current = self._context.current_file
        context = current.content if current is not None and current.category == "text" else None
        plan = await self._provider.generate_project_plan(goal, context)
        message = Message(role="model", text=f"🏗️ {plan.to_markdown()}")
        await self._context.log.append(message)
        self._persist()
        return message

    async def generate_media(self, config: MediaGenerationConfig) -> Message:
        if not config.prompt.strip():
            raise ValidationFailure("Describe what you want to generate", field="prompt")
        if config.type == "image":
            url = await self._provider.generate_image(config)
        elif config.type == "video":
            url = await self._provider.generate_video(config)
        else:
            raise ValidationFailure(f"Unknown media type {config.type!r}", field="type")

        message = Message(
            role="model",
            text=f"Here is the generated {config.type}:",
            generated_media=GeneratedMedia(
                type=config.type,
                url=url,
                mime_type="image/png" if config.type == "image" else "video/mp4",
            ),
        )
        await self._context.log.append(message)
        self._persist()
        return message

    async def generate_background(self) -> str:
        url = await self._provider.generate_image(
            MediaGenerationConfig(type="image", prompt=WALLPAPER_PROMPT, aspect_ratio="16:9")
        )
        self._context.custom_background = url
        self._persist()
        return url

    def clear_background(self) -> None:
        self._context.custom_background = None
        self._persist()

    def set_mode(self, mode: str) -> str:
        mode = mode.strip().lower()
        if mode not in MODEL_MODES:
            raise ValidationFailure(f"Unknown mode {mode!r}. Choose one of: {', '.join(MODEL_MODES)}", field="mode")
        self._mode = mode
        return mode

    def login(self, user: User) -> None:
        self._context.user_state.user = user
        self._persist()
        logger.info(f"Signed in as {user.id} via {user.auth_method}")

    def logout(self) -> None:
        self._context.user_state.user = None
        self._store.clear()
        logger.info("Signed out, persisted session cleared")

    def rename_user(self, name: str) -> User:
        user = self._context.user_state.user
        if user is None:
            raise ValidationFailure("Sign in to edit your profile", field="user")
        name = name.strip()
        if not name:
            raise ValidationFailure("Name cannot be empty", field="name")
        self._context.user_state.user = dataclasses.replace(user, name=name)
        self._persist()
        return self._context.user_state.user

    def pay(self, method: str, phone: str | None = None) -> PaymentRecord:
        record = payments.complete_payment(self._context.user_state, method, phone=phone)
        self._persist()
        return record

    def import_library_item(self, item_id: str) -> Message:
        library = self._require_library()
        item = library.get(item_id)
        if item is None:
            raise ValidationFailure(f"No library item with id {item_id!r}", field="item")

        ctx = self._context
        ctx.current_file = item.to_uploaded_file()
        ctx.user_state.download_history = [
            *ctx.user_state.download_history,
            DownloadRecord(id=f"dl_{now_ms()}", item_title=item.title, item_author=item.author, date=now_ms()),
        ]
        library.record_download(item.id)
        message = Message(role="model", text=f"Document loaded. Ask me anything about {ctx.current_file.name}!")
        ctx.log.reset([message])
        self._persist()
        return message

    def share_current_file(self, title: str, *, description: str = "", category: str = "General") -> LibraryItem:
        library = self._require_library()
        current = self._context.current_file
        if current is None:
            raise ValidationFailure("Upload a document before sharing it", field="file")
        user = self._context.user_state.user
        return library.publish(
            title=title,
            author=user.name if user else "Anonymous",
            description=description,
            category=category,
            file=current,
        )

    def _require_library(self) -> LibraryCatalog:
        if self._library is None:
            raise ValidationFailure("The community library is not available", field="library")
        return self._library

    def _persist(self) -> SaveOutcome:
        outcome = self._store.save(self._context.to_record())
        if outcome is SaveOutcome.DEGRADED:
            logger.warning("Storage is nearly full: older uploads can no longer be restored")
        return outcome

    def _print(self, text: str) -> None:
        print(f"{self._LINE_PREFIX}{text}")

    def _print_lines(self, lines: list[str]) -> None:
        for line in lines:
            print(line)

    async def _on_help(self) -> None:
        p = self._LINE_PREFIX
        print(f"{p}Available commands:")
        for line in (
            "/help",
            "/upload <path>                  load a document, image, video or audio file",
            "/attach <path>                  attach media to your next message",
            "/files                          uploads grouped by name, newest first",
            "/restore <upload-id>            make an earlier upload the active file",
            "/delete <upload-id>             remove an upload from history",
            "/history [n]                    show the last n messages",
            "/tasks [done <n>]               extract action items / toggle one",
            "/plan <goal>                    create a project plan",
            "/image <prompt> [--aspect 16:9] [--size 2K]",
            "/video <prompt> [--aspect 9:16] [--ref <image-path>]",
            "/background [clear]             generate or clear the wallpaper",
            f"/mode [{'|'.join(MODEL_MODES)}]",
            "/login <email-or-phone> <password>",
            "/signup <email-or-phone> <password> <confirm> <name>",
            "/google                         sign in with Google",
            "/reset <email-or-phone> <new-password> <confirm>",
            "/logout",
            "/name <new name>",
            f"/premium <{'|'.join(payments.PAYMENT_METHODS)}> [phone]",
            "/usage",
            "/memory",
            "/library [search] [--category <name>]",
            "/import <item-id>",
            "/share <title> [| description [| category]]",
        ):
            print(f"{p}- {line}")

    def _on_unknown_command(self, trimmed: str) -> None:
        self._print(f"Unknown local command: {trimmed}")

    async def _handle_upload_command(self, command: str) -> None:
        path = command_args(command)
        if not path:
            self._print("Usage: /upload <path>")
            return
        message = await self.upload_path(path.strip("\"'"))
        self._print_lines(self._view.format_message_lines(message))

    async def _handle_attach_command(self, command: str) -> None:
        path = command_args(command)
        if not path:
            self._print("Usage: /attach <path>")
            return
        try:
            kind = self.attach(path.strip("\"'"))
        except MoaError as ex:
            self._print(str(ex))
            return
        self._print(f"Attached {kind}. It will be sent with your next message.")

    async def _handle_files_command(self, command: str) -> None:
        groups = self._context.ledger.group_by_name()
        if not groups:
            self._print("No uploads yet.")
            return
        current = self._context.current_file
        self._print("Upload history:")
        self._print_lines(
            self._view.format_upload_groups(groups, current_upload_id=current.upload_id if current else None)
        )

    async def _handle_restore_command(self, command: str) -> None:
        record_id = command_args(command)
        if not record_id:
            self._print("Usage: /restore <upload-id>")
            return
        result = await self.restore_upload(record_id)
        if result.ok:
            self._print_lines(self._view.format_message_lines(self._context.log.last))
        elif result.reason == "not_found":
            self._print(f"Upload not found: {record_id}")
        else:
            self._print("Could not restore file: Content not found in history.")

    async def _handle_delete_command(self, command: str) -> None:
        record_id = command_args(command)
        if not record_id:
            self._print("Usage: /delete <upload-id>")
            return
        if self.delete_upload(record_id):
            self._print(f"Deleted {record_id}")
        else:
            self._print(f"Upload not found: {record_id}")

    async def _handle_history_command(self, command: str) -> None:
        arg = command_args(command)
        limit = 20
        if arg:
            try:
                limit = int(arg)
            except ValueError:
                self._print("Usage: /history [n]")
                return
        messages = self._context.log.messages[-limit:] if limit > 0 else []
        if not messages:
            self._print("No messages yet.")
            return
        self._print_lines(self._view.format_history_lines(messages))

    async def _handle_tasks_command(self, command: str) -> None:
        parts = command.split()
        if len(parts) == 3 and parts[1] == "done":
            try:
                index = int(parts[2]) - 1
                if index < 0:
                    raise IndexError(index)
                task = self.toggle_task(index)
            except (ValueError, IndexError):
                self._print("Usage: /tasks done <number>")
                return
            self._print_lines(self._view.format_task_lines([task], start=index + 1))
            return

        tasks = await self.extract_tasks()
        if not tasks:
            self._print("No tasks found.")
            return
        self._print("Action items:")
        self._print_lines(self._view.format_task_lines(tasks))

    async def _handle_plan_command(self, command: str) -> None:
        try:
            message = await self.create_plan(command_args(command))
        except ValidationFailure as ex:
            self._print(str(ex))
            return
        except MoaError as ex:
            logger.error(f"Plan generation failed: {ex}")
            self._print("Failed to create plan.")
            return
        self._print_lines(self._view.format_message_lines(message))

    async def _handle_media_command(self, command: str) -> None:
        media_type = "image" if command.lower().startswith("/image") else "video"
        try:
            config = self._parse_media_command(media_type, command_args(command))
            message = await self.generate_media(config)
        except ValidationFailure as ex:
            self._print(str(ex))
            return
        except MoaError as ex:
            logger.error(f"Media generation failed: {ex}")
            self._print("Media generation failed.")
            return
        self._print_lines(self._view.format_message_lines(message))

    def _parse_media_command(self, media_type: str, args: str) -> MediaGenerationConfig:
        try:
            tokens = shlex.split(args)
        except ValueError as ex:
            raise ValidationFailure(f"Could not parse command: {ex}") from ex

        options: dict[str, str] = {}
        prompt_parts: list[str] = []
        i = 0
        while i < len(tokens):
            token = tokens[i]
            if token in ("--aspect", "--size", "--ref") and i + 1 < len(tokens):
                options[token[2:]] = tokens[i + 1]
                i += 2
                continue
            prompt_parts.append(token)
            i += 1

        reference_image = None
        if "ref" in options:
            data, name, mime_type = read_upload(options["ref"])
            reference_image = to_data_url(data, mime_type)

        return MediaGenerationConfig(
            type=media_type,
            prompt=" ".join(prompt_parts),
            aspect_ratio=options.get("aspect", "1:1" if media_type == "image" else "16:9"),
            image_size=options.get("size", "1K"),
            reference_image=reference_image,
        )

    async def _handle_background_command(self, command: str) -> None:
        if command_args(command).lower() == "clear":
            self.clear_background()
            self._print("Background cleared.")
            return
        try:
            url = await self.generate_background()
        except MoaError as ex:
            logger.error(f"Background generation failed: {ex}")
            self._print("Background generation failed.")
            return
        self._print(f"New background: {url if not url.startswith('data:') else url[:48] + '...'}")

    async def _handle_mode_command(self, command: str) -> None:
        arg = command_args(command)
        if not arg:
            self._print(f"Current mode: {self._mode} (available: {', '.join(MODEL_MODES)})")
            return
        try:
            self._print(f"Mode set to {self.set_mode(arg)}")
        except ValidationFailure as ex:
            self._print(str(ex))

    @staticmethod
    def _auth_method_for(identifier: str) -> str:
        return "email" if "@" in identifier else "phone"

    async def _handle_login_command(self, command: str) -> None:
        parts = command_args(command).split()
        if len(parts) != 2:
            self._print("Usage: /login <email-or-phone> <password>")
            return
        try:
            user = auth.sign_in(parts[0], parts[1], method=self._auth_method_for(parts[0]))
        except ValidationFailure as ex:
            self._print(str(ex))
            return
        self.login(user)
        self._print(f"Welcome back, {user.name}!")

    async def _handle_signup_command(self, command: str) -> None:
        parts = command_args(command).split(maxsplit=3)
        if len(parts) != 4:
            self._print("Usage: /signup <email-or-phone> <password> <confirm> <name>")
            return
        identifier, password, confirm, name = parts
        try:
            user = auth.sign_up(name, identifier, password, confirm, method=self._auth_method_for(identifier))
        except ValidationFailure as ex:
            self._print(str(ex))
            return
        self.login(user)
        self._print(f"Account created. Welcome, {user.name}!")

    async def _handle_google_command(self, command: str) -> None:
        user = auth.google_sign_in()
        self.login(user)
        self._print(f"Signed in with Google as {user.name}")

    async def _handle_reset_command(self, command: str) -> None:
        parts = command_args(command).split()
        if len(parts) != 3:
            self._print("Usage: /reset <email-or-phone> <new-password> <confirm>")
            return
        identifier, password, confirm = parts
        try:
            auth.verify_reset_identifier(identifier, method=self._auth_method_for(identifier))
            self._print(auth.reset_password(password, confirm))
        except ValidationFailure as ex:
            self._print(str(ex))

    async def _handle_logout_command(self, command: str) -> None:
        self.logout()
        self._print("Signed out.")

    async def _handle_name_command(self, command: str) -> None:
        try:
            user = self.rename_user(command_args(command))
        except ValidationFailure as ex:
            self._print(str(ex))
            return
        self._print(f"Profile updated: {user.name}")

    async def _handle_premium_command(self, command: str) -> None:
        parts = command_args(command).split(maxsplit=1)
        if not parts:
            state = self._context.user_state
            if self._context.premium_active():
                self._print(f"Premium is active (KSH {PREMIUM_PRICE_KSH} paid).")
            else:
                self._print(f"Premium costs KSH {PREMIUM_PRICE_KSH}. Methods: {', '.join(payments.PAYMENT_METHODS)}")
            if state.payment_history:
                self._print("Payments:")
                self._print_lines(self._view.format_payment_lines(state.payment_history))
            return

        method = parts[0].lower()
        phone = parts[1] if len(parts) > 1 else None
        try:
            normalized = payments.validate_payment(method, phone)
        except ValidationFailure as ex:
            self._print(str(ex))
            return
        for status in payments.status_messages(method, normalized):
            self._print(status)
        self.pay(method, normalized)
        self._print("Payment successful! Premium is unlocked.")

    async def _handle_usage_command(self, command: str) -> None:
        ctx = self._context
        remaining = ctx.usage.remaining(ctx.premium_active())
        if remaining is None:
            self._print(f"Premium: unlimited questions ({ctx.usage.count} asked).")
        else:
            self._print(f"Free questions used: {ctx.usage.count}/{ctx.usage.limit} ({remaining} remaining).")

    async def _handle_memory_command(self, command: str) -> None:
        memory = self._context.user_state.long_term_memory
        if not memory:
            self._print("No long-term memory yet.")
            return
        self._print("Long-term memory:")
        self._print_lines([f"{self._LINE_PREFIX}{line}" for line in memory.splitlines()])

    async def _handle_library_command(self, command: str) -> None:
        try:
            library = self._require_library()
        except ValidationFailure as ex:
            self._print(str(ex))
            return
        query, _, category = command_args(command).partition("--category")
        items = library.search(query.strip(), category.strip() or "All")
        if not items:
            self._print("No notes found matching your search.")
            return
        self._print(f"Categories: {', '.join(library.categories())}")
        self._print_lines(self._view.format_library_lines(items))

    async def _handle_import_command(self, command: str) -> None:
        item_id = command_args(command)
        if not item_id:
            self._print("Usage: /import <item-id>")
            return
        try:
            message = self.import_library_item(item_id)
        except ValidationFailure as ex:
            self._print(str(ex))
            return
        self._print_lines(self._view.format_message_lines(message))

    async def _handle_share_command(self, command: str) -> None:
        fields = [f.strip() for f in command_args(command).split("|")]
        if not fields[0]:
            self._print("Usage: /share <title> [| description [| category]]")
            return
        try:
            item = self.share_current_file(
                fields[0],
                description=fields[1] if len(fields) > 1 else "",
                category=fields[2] if len(fields) > 2 else "General",
            )
        except ValidationFailure as ex:
            self._print(str(ex))
            return
        self._print(f"Shared to the community library as {item.id}")
