from dataclasses import dataclass

from moa_assistant.constants import MAX_TEXT_FILE_BYTES


@dataclass
class AssistantConfig:
    default_mode: str = "standard"
    max_text_file_bytes: int = MAX_TEXT_FILE_BYTES
