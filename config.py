# config.py
# Environment variables and tunable knobs for the Folio backend.

import os
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

# ----------------------------
# Environment
# ----------------------------

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_CHAT_MODEL = os.getenv("OPENAI_CHAT_MODEL", "gpt-4o-mini")
CHAT_PROVIDER = os.getenv("CHAT_PROVIDER", "openai")  # "openai" | "canned"

ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY", "")
ELEVENLABS_BASE_URL = os.getenv("ELEVENLABS_BASE_URL", "https://api.elevenlabs.io/v1")
ELEVENLABS_MODEL_ID = os.getenv("ELEVENLABS_MODEL_ID", "eleven_monolingual_v1")

STORAGE_ROOT = os.getenv("STORAGE_ROOT", "./storage")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")
FRONT_ORIGIN = os.getenv("FRONT_ORIGIN", "http://localhost:5173")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


# ----------------------------
# Config knobs (tunable)
# ----------------------------

class Settings(BaseModel):
    # Upload validation
    max_upload_bytes: int = 50 * 1024 * 1024
    upload_read_chunk_bytes: int = 1024 * 1024

    # Providers
    chat_provider: str = CHAT_PROVIDER
    openai_api_key: str = OPENAI_API_KEY
    openai_base_url: str = OPENAI_BASE_URL
    openai_chat_model: str = OPENAI_CHAT_MODEL
    elevenlabs_api_key: str = ELEVENLABS_API_KEY
    elevenlabs_base_url: str = ELEVENLABS_BASE_URL
    elevenlabs_model_id: str = ELEVENLABS_MODEL_ID
    provider_timeout_s: float = 60.0
    narration_timeout_s: float = 120.0
    # Nothing is retried unless explicitly configured
    provider_retries: int = 0
    chat_temperature: float = 0.7
    canned_seed: int = 7

    # Storage
    storage_root: str = STORAGE_ROOT
    public_base_url: str = PUBLIC_BASE_URL
    use_local_storage: bool = True

    # Listing / history windows
    default_page_size: int = 20
    max_page_size: int = 100
    history_limit: int = 200
    recent_messages_in_prompt: int = 12

    # HTTP
    cors_origins: List[str] = Field(default_factory=lambda: [FRONT_ORIGIN])
    log_level: str = LOG_LEVEL


settings = Settings()
