"""Versioned envelope for the persisted session record.

Version 0 is the unversioned blob written by the first web client:
``{"userState": ..., "file": ..., "messages": ..., "customBackground": ...}``.
Every later version is wrapped as ``{"schemaVersion": N, "session": {...}}`` and
each step up is an explicit migration function.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from typing import Any

CURRENT_SCHEMA_VERSION = 2

_USER_STATE_DEFAULTS: dict[str, Any] = {
    "user": None,
    "isPremium": False,
    "hasPaid": False,
    "paymentHistory": [],
    "downloadHistory": [],
    "uploadHistory": [],
    "questionUsage": [],
    "longTermMemory": "",
}


class SchemaError(ValueError):
    pass


def wrap(session: dict[str, Any]) -> dict[str, Any]:
    return {"schemaVersion": CURRENT_SCHEMA_VERSION, "session": session}


def detect_version(payload: Any) -> int:
    if not isinstance(payload, dict):
        raise SchemaError(f"Persisted state must be a JSON object, got {type(payload).__name__}")
    if "schemaVersion" in payload:
        version = payload["schemaVersion"]
        if not isinstance(version, int) or isinstance(version, bool) or version < 1:
            raise SchemaError(f"Invalid schemaVersion: {version!r}")
        if not isinstance(payload.get("session"), dict):
            raise SchemaError("Versioned state is missing its session object")
        return version
    if any(k in payload for k in ("userState", "file", "messages", "customBackground")):
        return 0
    raise SchemaError("Persisted state has no recognizable session fields")


def unwrap(payload: Any) -> dict[str, Any]:
    """Return the session object of ``payload`` migrated to the current version."""
    version = detect_version(payload)
    if version > CURRENT_SCHEMA_VERSION:
        raise SchemaError(
            f"Persisted state uses schema version {version}, newer than supported version {CURRENT_SCHEMA_VERSION}"
        )
    session = copy.deepcopy(payload if version == 0 else payload["session"])
    while version < CURRENT_SCHEMA_VERSION:
        session = _MIGRATIONS[version](session)
        version += 1
    return session


def _migrate_v0_to_v1(session: dict[str, Any]) -> dict[str, Any]:
    user_state = session.get("userState")
    if not isinstance(user_state, dict):
        user_state = {}
    merged_user_state = {**copy.deepcopy(_USER_STATE_DEFAULTS), **user_state}
    messages = session.get("messages")
    return {
        "userState": merged_user_state,
        "currentFile": session.get("file") if isinstance(session.get("file"), dict) else None,
        "messages": messages if isinstance(messages, list) else [],
        "customBackground": session.get("customBackground"),
    }


def _migrate_v1_to_v2(session: dict[str, Any]) -> dict[str, Any]:
    user_state = session.get("userState") or {}
    history = [r for r in user_state.get("uploadHistory") or [] if isinstance(r, dict)]
    for record in history:
        record.setdefault("type", "application/octet-stream")
        record.setdefault("category", "text")
        record["size"] = int(record.get("size") or 0)
    user_state["uploadHistory"] = history

    current = session.get("currentFile")
    if isinstance(current, dict) and not current.get("uploadId"):
        matches = [
            r
            for r in history
            if r.get("name") == current.get("name") and r.get("content") == current.get("content")
        ]
        if matches:
            newest = max(matches, key=lambda r: int(r.get("date") or 0))
            current["uploadId"] = newest.get("id")
    session["userState"] = user_state
    return session


_MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    0: _migrate_v0_to_v1,
    1: _migrate_v1_to_v2,
}
