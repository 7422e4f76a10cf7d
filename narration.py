# narration.py
# Chapter narration: text-to-speech through the narration provider, audio
# stored in the audio bucket and linked back onto the chapter.

from __future__ import annotations

from typing import List, Optional

import structlog

from errors import InvalidRequest
from models import ChapterAudio, Voice, VoiceSettings
from providers import NarrationProvider
from repositories import Repositories
from stores import BlobStore, StorageBucket
from utils import now_ts

logger = structlog.get_logger("narration")


class NarrationService:
    def __init__(self, repos: Repositories, blobs: BlobStore, provider: NarrationProvider) -> None:
        self.repos = repos
        self.blobs = blobs
        self.provider = provider

    def list_voices(self) -> List[Voice]:
        return self.provider.list_voices()

    def generate_chapter_audio(
        self,
        chapter_id: str,
        voice_id: str,
        voice_settings: Optional[VoiceSettings] = None,
    ) -> ChapterAudio:
        chapter = self.repos.chapters.require(chapter_id)
        text = chapter.content.strip()
        if not text:
            raise InvalidRequest("chapter has no text to narrate", detail={"chapter_id": chapter_id})

        # provider errors propagate; the chapter is only touched after audio exists
        speech = self.provider.synthesize_speech(text, voice_id, voice_settings)

        path = f"{chapter.book_id}/{chapter.id}.mp3"
        url = self.blobs.put(StorageBucket.audio, path, speech.audio_bytes, "audio/mpeg")

        with self.repos.transaction():
            chapter.audio_url = url
            chapter.updated_at = now_ts()
            self.repos.chapters.save(chapter)
            book = self.repos.books.require(chapter.book_id)
            if not book.has_audio:
                book.has_audio = True
                book.updated_at = chapter.updated_at
                self.repos.books.save(book)

        logger.info(
            "chapter_narrated",
            chapter_id=chapter_id,
            voice_id=voice_id,
            size=len(speech.audio_bytes),
            duration_seconds=speech.duration_seconds,
        )
        return ChapterAudio(
            chapter_id=chapter_id,
            audio_url=url,
            duration_seconds=speech.duration_seconds,
            size=len(speech.audio_bytes),
        )
