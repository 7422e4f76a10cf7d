# /models.py
import time
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

Format = Literal["epub", "docx", "markdown", "plaintext"]
ManuscriptFormat = Literal["epub", "docx", "markdown"]
MessageType = Literal["user", "bot"]
ReadingMode = Literal["text", "audio", "chat"]
UserRole = Literal["author", "reader", "admin"]


# ----------------------------
# Manuscript (ephemeral)
# ----------------------------

class ChapterDraft(BaseModel):
    title: str
    content: str
    word_count: int = 0
    order: int  # 1-based, dense, document order


class Manuscript(BaseModel):
    title: str
    author: str = "Unknown Author"
    description: str = ""
    word_count: int = 0
    format: ManuscriptFormat
    chapters: List[ChapterDraft] = []
    # Author-overridable fields, merged in by the normalizer
    tags: List[str] = []
    has_audio: bool = False
    has_chat_enabled: bool = False


class ManuscriptOverrides(BaseModel):
    # Only explicitly set fields take precedence (shallow merge)
    title: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    has_audio: Optional[bool] = None
    has_chat_enabled: Optional[bool] = None


class UploadDescriptor(BaseModel):
    # What the client declared about the file; nothing here comes from its bytes
    filename: str
    content_type: str
    size: Optional[int] = None


class ManuscriptUploadResult(BaseModel):
    id: str
    original_url: str
    metadata: Manuscript


class MaterializeOptions(BaseModel):
    has_audio: Optional[bool] = None
    has_chat_enabled: Optional[bool] = None
    tags: Optional[List[str]] = None


# ----------------------------
# Persistent records
# ----------------------------

class User(BaseModel):
    id: str
    name: str
    email: str
    role: UserRole = "reader"
    avatar_url: Optional[str] = None
    created_at: float = Field(default_factory=lambda: time.time())
    updated_at: float = Field(default_factory=lambda: time.time())


class Book(BaseModel):
    id: str
    title: str
    author_id: str
    cover_url: Optional[str] = None
    description: str = ""
    has_audio: bool = False
    has_chat_enabled: bool = False
    published_at: Optional[float] = None  # None means draft
    rating: Optional[float] = None
    chat_persona: Optional[str] = None
    created_at: float = Field(default_factory=lambda: time.time())
    updated_at: float = Field(default_factory=lambda: time.time())


class Chapter(BaseModel):
    id: str
    book_id: str
    title: str
    content: str = ""
    audio_url: Optional[str] = None
    chat_enabled: bool = False
    exclusive_chat: bool = False
    order_index: int
    created_at: float = Field(default_factory=lambda: time.time())
    updated_at: float = Field(default_factory=lambda: time.time())

    @model_validator(mode="after")
    def _exclusive_requires_chat(self):
        if self.exclusive_chat and not self.chat_enabled:
            raise ValueError("exclusive_chat requires chat_enabled")
        return self


class Tag(BaseModel):
    id: str
    book_id: str
    tag: str
    created_at: float = Field(default_factory=lambda: time.time())


class ChatMessage(BaseModel):
    id: str
    user_id: str
    chapter_id: str
    type: MessageType
    content: str
    timestamp: float = Field(default_factory=lambda: time.time())


class Bookmark(BaseModel):
    id: str
    user_id: str
    chapter_id: str
    type: ReadingMode
    # text: character offset, audio: elapsed seconds, chat: message index
    position: float
    content: Optional[str] = None
    note: Optional[str] = None
    created_at: float = Field(default_factory=lambda: time.time())


class ReadingSession(BaseModel):
    id: str
    user_id: str
    book_id: str
    current_chapter: int = 1
    mode: ReadingMode = "text"
    position: float = 0
    last_accessed: float = Field(default_factory=lambda: time.time())


class BookDetail(Book):
    chapters: List[Chapter] = []
    tags: List[str] = []


# ----------------------------
# Chat
# ----------------------------

class ChatContext(BaseModel):
    chapter_id: str
    chapter_title: str
    chapter_content: str = ""
    book_title: str
    author_name: str
    persona: Optional[str] = None


class BotReply(BaseModel):
    content: str
    timestamp: float


# ----------------------------
# Narration
# ----------------------------

class Voice(BaseModel):
    id: str
    name: str
    category: str = "premade"
    description: str = ""
    preview_url: Optional[str] = None


class VoiceSettings(BaseModel):
    stability: float = 0.5
    similarity_boost: float = 0.5
    style: float = 0.0
    use_speaker_boost: bool = True


class SpeechResult(BaseModel):
    audio_bytes: bytes
    duration_seconds: float


class ChapterAudio(BaseModel):
    chapter_id: str
    audio_url: str
    duration_seconds: float
    size: int


# ----------------------------
# API request bodies
# ----------------------------

class MaterializeRequest(BaseModel):
    author_id: str
    manuscript: Manuscript
    options: MaterializeOptions = MaterializeOptions()


class BookCreateRequest(BaseModel):
    author_id: str
    title: str
    description: str = ""
    cover_url: Optional[str] = None
    has_audio: bool = False
    has_chat_enabled: bool = False
    chat_persona: Optional[str] = None
    tags: List[str] = []


class BookUpdate(BaseModel):
    # published_at is deliberately absent: publishing goes through publish_book
    title: Optional[str] = None
    description: Optional[str] = None
    cover_url: Optional[str] = None
    has_audio: Optional[bool] = None
    has_chat_enabled: Optional[bool] = None
    rating: Optional[float] = None
    chat_persona: Optional[str] = None
    tags: Optional[List[str]] = None


class BookFilters(BaseModel):
    author_id: Optional[str] = None
    has_audio: Optional[bool] = None
    has_chat_enabled: Optional[bool] = None
    published: Optional[bool] = None
    tag: Optional[str] = None
    search: Optional[str] = None


class ChapterCreateRequest(BaseModel):
    book_id: str
    title: str
    content: str = ""
    chat_enabled: bool = False
    exclusive_chat: bool = False


class ChapterUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    audio_url: Optional[str] = None
    chat_enabled: Optional[bool] = None
    exclusive_chat: Optional[bool] = None


class ReorderRequest(BaseModel):
    book_id: str
    chapter_ids: List[str]


class ChatRequest(BaseModel):
    user_id: str
    chapter_id: str
    message: str


class ChatResponse(BaseModel):
    output: str
    timestamp: float
    chapter_id: str


class MergeSynthesisRequest(BaseModel):
    user_id: str
    chapter_id: str


class BookmarkCreateRequest(BaseModel):
    user_id: str
    chapter_id: str
    type: ReadingMode
    position: float
    content: Optional[str] = None
    note: Optional[str] = None


class ReadingSessionRequest(BaseModel):
    user_id: str
    book_id: str
    current_chapter: int = 1
    mode: ReadingMode = "text"
    position: float = 0


class UserUpsertRequest(BaseModel):
    id: Optional[str] = None
    name: str
    email: str
    role: UserRole = "reader"
    avatar_url: Optional[str] = None


class AudioRequest(BaseModel):
    voice_id: str
    voice_settings: Optional[VoiceSettings] = None
