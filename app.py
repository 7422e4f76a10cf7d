# app.py
# FastAPI backend for Folio, an e-book publishing platform.
# - Manuscript upload, segmentation into chapters and book creation
# - Library editing (books, chapters, tags, covers) and reader views
# - Chapter-scoped chat with the author avatar, synthesis of the conversation
# - Chapter narration through a text-to-speech provider

import logging
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chat import ConversationEngine, SynthesisEngine
from config import Settings, settings as default_settings
from errors import PublishingError
from ingest import ManuscriptService
from library import LibraryService
from materializer import BookMaterializer
from narration import NarrationService
from providers import (
    CannedChatProvider,
    ConversationalProvider,
    ElevenLabsNarrationProvider,
    NarrationProvider,
    OpenAIChatProvider,
)
from repositories import Repositories
from routes.audio import router as audio_router
from routes.bookmarks import router as bookmarks_router
from routes.books import library_router, router as books_router
from routes.chapters import router as chapters_router
from routes.chat import router as chat_router
from routes.files import router as files_router
from routes.health import router as health_router
from routes.manuscripts import router as manuscripts_router
from routes.reading_sessions import router as reading_sessions_router
from routes.users import router as users_router
from stores import BlobStore, InMemoryBlobStore, InMemoryRecordStore, LocalBlobStore, RecordStore


# --- Configure structlog + stdlib logging
def configure_logging(level: str = "INFO") -> None:
    lvl = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", level=lvl)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(lvl),
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
    )


configure_logging(default_settings.log_level)
logger = structlog.get_logger("app")


# ----------------------------
# Service graph
# ----------------------------

class Services:
    """Everything a request handler may touch, built once per app."""

    def __init__(
        self,
        settings: Settings,
        store: RecordStore,
        blobs: BlobStore,
        chat_provider: ConversationalProvider,
        narration_provider: NarrationProvider,
    ) -> None:
        self.settings = settings
        self.store = store
        self.blobs = blobs
        self.repos = Repositories(store)
        self.chat_provider = chat_provider
        self.narration_provider = narration_provider

        self.manuscripts = ManuscriptService(blobs, settings)
        self.materializer = BookMaterializer(self.repos)
        self.conversations = ConversationEngine(
            self.repos.messages, chat_provider, history_in_prompt=settings.recent_messages_in_prompt
        )
        self.synthesis = SynthesisEngine(self.repos.messages)
        self.library = LibraryService(self.repos, blobs, self.synthesis, max_page_size=settings.max_page_size)
        self.narration = NarrationService(self.repos, blobs, narration_provider)


def build_chat_provider(s: Settings) -> ConversationalProvider:
    if s.chat_provider == "canned":
        logger.warning("chat_provider_canned", seed=s.canned_seed)
        return CannedChatProvider(seed=s.canned_seed)
    if not s.openai_api_key:
        # Startup never fails on a missing key; chat turns raise ProviderUnavailable instead
        logger.warning("chat_provider_unconfigured", provider=s.chat_provider)
    return OpenAIChatProvider(
        api_key=s.openai_api_key,
        base_url=s.openai_base_url,
        model=s.openai_chat_model,
        timeout_s=s.provider_timeout_s,
        retries=s.provider_retries,
        temperature=s.chat_temperature,
    )


def build_services(
    s: Optional[Settings] = None,
    store: Optional[RecordStore] = None,
    blobs: Optional[BlobStore] = None,
    chat_provider: Optional[ConversationalProvider] = None,
    narration_provider: Optional[NarrationProvider] = None,
) -> Services:
    s = s or default_settings
    if blobs is None:
        if s.use_local_storage:
            blobs = LocalBlobStore(s.storage_root, s.public_base_url)
        else:
            blobs = InMemoryBlobStore(s.public_base_url)
    return Services(
        settings=s,
        store=store if store is not None else InMemoryRecordStore(),
        blobs=blobs,
        chat_provider=chat_provider or build_chat_provider(s),
        narration_provider=narration_provider
        or ElevenLabsNarrationProvider(
            api_key=s.elevenlabs_api_key,
            base_url=s.elevenlabs_base_url,
            model_id=s.elevenlabs_model_id,
            timeout_s=s.narration_timeout_s,
        ),
    )


# ----------------------------
# FastAPI app
# ----------------------------

async def publishing_error_handler(request: Request, exc: PublishingError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log("request_failed", path=request.url.path, error=exc.code, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def create_app(services: Optional[Services] = None) -> FastAPI:
    services = services or build_services()
    app = FastAPI(title="Folio Backend")
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=services.settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(PublishingError, publishing_error_handler)

    app.include_router(health_router)
    app.include_router(manuscripts_router)
    app.include_router(books_router)
    app.include_router(library_router)
    app.include_router(chapters_router)
    app.include_router(chat_router)
    app.include_router(bookmarks_router)
    app.include_router(reading_sessions_router)
    app.include_router(audio_router)
    app.include_router(users_router)
    app.include_router(files_router)

    logger.info("app_created", chat_provider=type(services.chat_provider).__name__)
    return app


app = create_app()
