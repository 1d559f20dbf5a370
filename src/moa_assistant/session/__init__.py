from moa_assistant.session.context import SessionContext, SessionLimits
from moa_assistant.session.conversation_log import ConversationLog
from moa_assistant.session.session_store import SaveOutcome, SessionStore, degrade_record
from moa_assistant.session.storage import InMemoryKeyValueStorage, KeyValueStorage, SqliteKeyValueStorage
from moa_assistant.session.upload_ledger import RestoreResult, UploadGroup, UploadLedger
from moa_assistant.session.usage_counter import UsageCounter

__all__ = [
    "ConversationLog",
    "InMemoryKeyValueStorage",
    "KeyValueStorage",
    "RestoreResult",
    "SaveOutcome",
    "SessionContext",
    "SessionLimits",
    "SessionStore",
    "SqliteKeyValueStorage",
    "UploadGroup",
    "UploadLedger",
    "UsageCounter",
    "degrade_record",
]
