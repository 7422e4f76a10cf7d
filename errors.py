"""Domain errors raised by the ingestion, library, chat and narration layers.

Every error carries a stable ``code`` and the HTTP status the API layer
renders it with, so routes never translate errors by hand.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PublishingError(Exception):
    code = "publishing_error"
    status_code = 500

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_payload(self) -> Dict[str, Any]:
        return {
            "ok": False,
            "error": self.code,
            "message": self.message,
            "detail": self.detail,
        }


class UnsupportedType(PublishingError):
    code = "unsupported_type"
    status_code = 415


class FileTooLarge(PublishingError):
    code = "file_too_large"
    status_code = 413


class ParseFailure(PublishingError):
    code = "parse_failure"
    status_code = 422


class PersistenceFailure(PublishingError):
    """A record-store operation failed.

    ``partial_state`` tells the caller whether rows written before the failure
    may still exist. Transactional writes always report ``False``.
    """

    code = "persistence_failure"
    status_code = 500

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None, partial_state: bool = False):
        super().__init__(message, detail)
        self.partial_state = partial_state
        self.detail.setdefault("partial_state", partial_state)


class ProviderUnavailable(PublishingError):
    code = "provider_unavailable"
    status_code = 502


class NotFound(PublishingError):
    code = "not_found"
    status_code = 404


class InvalidChapterState(PublishingError):
    code = "invalid_chapter_state"
    status_code = 422


class ChatNotEnabled(PublishingError):
    code = "chat_not_enabled"
    status_code = 409


class NothingToSynthesize(PublishingError):
    code = "nothing_to_synthesize"
    status_code = 409


class InvalidRequest(PublishingError):
    code = "invalid_request"
    status_code = 400
