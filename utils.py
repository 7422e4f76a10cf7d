import time
import uuid
from pathlib import PurePosixPath
from typing import Dict, Iterable, List


def new_id() -> str:
    return str(uuid.uuid4())


def now_ts() -> float:
    """Current time as epoch seconds."""
    return time.time()


def now_millis() -> int:
    return int(time.time() * 1000)


def word_count(text: str) -> int:
    """Number of whitespace-delimited tokens."""
    return len(text.split())


def strip_extension(filename: str) -> str:
    """File name without directory or extension ("drafts/My Book.md" -> "My Book")."""
    name = PurePosixPath((filename or "").replace("\\", "/")).name
    return PurePosixPath(name).stem.strip()


def normalize_tags(tags: Iterable[str]) -> List[str]:
    """Lowercase, strip and dedupe tags, keeping first-seen order."""
    seen: List[str] = []
    for raw in tags or []:
        tag = (raw or "").strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def base_mime_type(content_type: str) -> str:
    """'Text/Markdown; charset=utf-8' -> 'text/markdown'."""
    return (content_type or "").split(";", 1)[0].strip().lower()


def build_openai_headers(bearer: str) -> Dict[str, str]:
    """HTTP headers for OpenAI-compatible APIs."""
    return {
        "Authorization": f"Bearer {bearer}",
        "Content-Type": "application/json",
    }


def build_elevenlabs_headers(api_key: str, accept: str = "application/json") -> Dict[str, str]:
    return {
        "Accept": accept,
        "Content-Type": "application/json",
        "xi-api-key": api_key,
    }
