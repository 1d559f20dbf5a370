from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from moa_assistant.constants import (
    DEFAULT_STORAGE_QUOTA_BYTES,
    FREE_QUESTIONS_LIMIT,
    MAX_TEXT_FILE_BYTES,
    MEMORY_CONSOLIDATION_INTERVAL,
    UPLOAD_HISTORY_LIMIT,
)

SUPPORTED_PROVIDERS = ("template", "anthropic", "openai")


@dataclass
class RuntimeEnv:
    provider_api_key: str
    provider_env_var: str | None
    port: int


@dataclass
class AppConfig:
    provider_name: str
    models: dict[str, str]
    max_tokens: int
    temperature: float
    state_db_path: str
    storage_quota_bytes: int
    free_questions_limit: int
    memory_consolidation_interval: int
    upload_history_limit: int
    max_text_file_bytes: int
    response_latency_seconds: float
    history_window: int
    log_level: str
    log_consumers: list | None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def parse_app_config(config: dict) -> AppConfig:
    provider_name = str(config.get("Provider", "template")).strip().lower()
    if provider_name not in SUPPORTED_PROVIDERS:
        raise ValueError(f"Unknown provider: {provider_name!r}. Supported: {', '.join(SUPPORTED_PROVIDERS)}")

    models = config.get("Models") or {}
    if not isinstance(models, dict):
        raise ValueError("Models must be an object mapping mode names to model ids")

    # Simulated latency only applies to the offline provider.
    simulate = _to_bool(config.get("SimulateLatency", True), default=True)

    return AppConfig(
        provider_name=provider_name,
        models={str(k).strip().lower(): str(v) for k, v in models.items()},
        max_tokens=int(config.get("MaxTokens", 4096)),
        temperature=float(config.get("Temperature", 0.7)),
        state_db_path=str(config.get("StateDbPath", ".moa/state.db")),
        storage_quota_bytes=int(config.get("StorageQuotaBytes", DEFAULT_STORAGE_QUOTA_BYTES)),
        free_questions_limit=int(config.get("FreeQuestionsLimit", FREE_QUESTIONS_LIMIT)),
        memory_consolidation_interval=int(config.get("MemoryConsolidationInterval", MEMORY_CONSOLIDATION_INTERVAL)),
        upload_history_limit=int(config.get("UploadHistoryLimit", UPLOAD_HISTORY_LIMIT)),
        max_text_file_bytes=int(config.get("MaxTextFileBytes", MAX_TEXT_FILE_BYTES)),
        response_latency_seconds=float(config.get("ResponseLatencySeconds", 0.6)) if simulate else 0.0,
        history_window=int(config.get("HistoryWindow", 6)),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env(provider_name: str) -> RuntimeEnv:
    if provider_name == "openai":
        provider_env_var: str | None = "OPENAI_API_KEY"
    elif provider_name == "anthropic":
        provider_env_var = "ANTHROPIC_API_KEY"
    else:
        provider_env_var = None

    return RuntimeEnv(
        provider_api_key=os.environ.get(provider_env_var, "") if provider_env_var else "",
        provider_env_var=provider_env_var,
        port=int(os.environ.get("PORT", "3000")),
    )
