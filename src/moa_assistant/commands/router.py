from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping


class CommandRouter:
    """Dispatch ``/name args`` input lines to async handlers.

    Handlers receive the whole trimmed line. Matching is on the command word,
    so ``/files`` never triggers ``/file``.
    """

    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        handlers: Mapping[str, Callable[[str], Awaitable[None]]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._handlers = dict(handlers)
        self._on_unknown = on_unknown

    @property
    def commands(self) -> list[str]:
        return ["/help", *self._handlers]

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        word = trimmed.split(maxsplit=1)[0].lower()
        if word == "/help":
            await self._on_help()
            return True

        handler = self._handlers.get(word)
        if handler is not None:
            await handler(trimmed)
            return True

        self._on_unknown(trimmed)
        return True


def command_args(command: str) -> str:
    """Everything after the command word, stripped."""
    parts = command.strip().split(maxsplit=1)
    return parts[1].strip() if len(parts) > 1 else ""
