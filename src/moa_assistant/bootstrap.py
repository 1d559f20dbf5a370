from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from moa_assistant.app_config import AppConfig, RuntimeEnv
from moa_assistant.assistant import StudyAssistant
from moa_assistant.assistant_config import AssistantConfig
from moa_assistant.library import LibraryCatalog
from moa_assistant.logging_config import setup_logging
from moa_assistant.provider import AssistantProvider, create_provider
from moa_assistant.session import SessionContext, SessionLimits, SessionStore, SqliteKeyValueStorage


@dataclass
class AppRuntime:
    assistant: StudyAssistant
    provider: AssistantProvider
    storage: SqliteKeyValueStorage
    log_descriptions: list[str]
    restored: bool


def build_provider(app: AppConfig, env: RuntimeEnv) -> AssistantProvider:
    return create_provider(
        app.provider_name,
        env.provider_api_key,
        models=app.models or None,
        max_tokens=app.max_tokens,
        temperature=app.temperature,
        history_window=app.history_window,
        latency_seconds=app.response_latency_seconds,
    )


def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    db_path = Path(app.state_db_path)
    if not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    storage = SqliteKeyValueStorage(str(db_path), quota_bytes=app.storage_quota_bytes)

    store = SessionStore(storage)
    record = store.load()
    context = SessionContext(
        record,
        limits=SessionLimits(
            free_questions_limit=app.free_questions_limit,
            memory_consolidation_interval=app.memory_consolidation_interval,
            upload_history_limit=app.upload_history_limit,
        ),
    )
    if record is not None:
        logger.info(f"Restored session from {db_path} ({len(context.log)} message(s))")

    provider = build_provider(app, env)
    assistant = StudyAssistant(
        context,
        store,
        provider,
        library=LibraryCatalog(storage),
        config=AssistantConfig(max_text_file_bytes=app.max_text_file_bytes),
    )

    return AppRuntime(
        assistant=assistant,
        provider=provider,
        storage=storage,
        log_descriptions=log_descriptions,
        restored=record is not None,
    )
