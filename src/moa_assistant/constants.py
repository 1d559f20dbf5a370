APP_NAME = "MOA AI"
APP_VERSION = "2.0.0"
PREMIUM_PRICE_KSH = 20

STORAGE_KEY = "MOA_APP_STATE_V1"
LIBRARY_STORAGE_KEY = "MOA_PUBLIC_LIBRARY_V1"

PREMIUM_VALIDITY_MS = 60 * 24 * 60 * 60 * 1000

FREE_QUESTIONS_LIMIT = 5
# Nominal rate-limit window. Usage timestamps are never evicted against it.
USAGE_WINDOW_MS = 60 * 60 * 1000

MEMORY_CONSOLIDATION_INTERVAL = 5
UPLOAD_HISTORY_LIMIT = 50
MAX_TEXT_FILE_BYTES = 15 * 1024 * 1024
DEFAULT_STORAGE_QUOTA_BYTES = 5 * 1024 * 1024

MODEL_MODES = ("standard", "fast", "thinking", "search", "maps")

DEFAULT_ANTHROPIC_MODELS = {
    "standard": "claude-sonnet-4-5-20250929",
    "fast": "claude-haiku-4-5-20251001",
    "thinking": "claude-opus-4-1-20250805",
}

DEFAULT_OPENAI_MODELS = {
    "standard": "gpt-4o",
    "fast": "gpt-4o-mini",
    "thinking": "o3",
}

WALLPAPER_PROMPT = (
    "A beautiful, abstract, calming wallpaper with teal, cyan and emerald green "
    "geometric shapes, 4k resolution, minimalist style"
)

INITIAL_LIBRARY_DATA = [
    {
        "id": "lib_001",
        "title": "Introduction to Biology Form 4",
        "author": "Teacher Alice",
        "description": "Comprehensive notes covering Genetics and Evolution.",
        "category": "Biology",
        "fileContent": "Genetics is the study of heredity and the variation of inherited characteristics...",
        "fileType": "text/plain",
        "date": "2023-10-15",
        "downloads": 120,
    },
    {
        "id": "lib_002",
        "title": "History of Kenya - Independence",
        "author": "John Doe",
        "description": "Key events leading to independence in 1963.",
        "category": "History",
        "fileContent": (
            "Kenya achieved independence on December 12, 1963. "
            "Jomo Kenyatta became the first president..."
        ),
        "fileType": "text/plain",
        "date": "2023-11-02",
        "downloads": 85,
    },
]
