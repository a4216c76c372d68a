"""Source language detection from file extensions."""

from pathlib import PurePath

LANGUAGE_MAP = {
    ".py": "python",
    ".pyi": "python",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".rb": "ruby",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".sh": "shell",
}

JS_LANGUAGES = {"javascript", "typescript"}


def detect_language(path: str) -> str:
    """Language name for ``path``, or "text" when unknown."""
    return LANGUAGE_MAP.get(PurePath(path).suffix.lower(), "text")


def file_type(path: str) -> str:
    """Bare extension used to tag learning records ("py", "ts", ...)."""
    suffix = PurePath(path).suffix
    return suffix[1:].lower() if suffix else "unknown"
