# providers.py
# External conversational and narration providers behind small interfaces so
# services can be handed a real client, a canned one, or a test double.

from __future__ import annotations

import random
import time
from collections import defaultdict
from typing import Any, Dict, List, Optional, Protocol

import requests
import structlog

from errors import ProviderUnavailable
from models import ChatContext, SpeechResult, Voice, VoiceSettings
from utils import build_elevenlabs_headers, build_openai_headers

logger = structlog.get_logger("providers")


# ----------------------------
# Prompt templating
# ----------------------------

class _SafeDict(defaultdict):
    def __missing__(self, key):  # type: ignore[override]
        return ""


def render_template(template: str, ctx: Dict[str, Any]) -> str:
    return template.format_map(_SafeDict(str, **ctx))


AUTHOR_AVATAR_TEMPLATE = (
    "You are {author_name}, the author of the book \"{book_title}\". "
    "A reader is chatting with you about the chapter \"{chapter_title}\".\n"
    "{persona_block}"
    "Answer in the first person, as the author, in warm and precise prose. "
    "Ground every answer in the chapter below; do not invent events that contradict it. "
    "No lists, no meta commentary about being an AI.\n\n"
    "Chapter text:\n{chapter_excerpt}"
)


def compress_text_for_context(text: str, head: int = 3000, tail: int = 1000) -> str:
    """Keep the start and end of long chapters; the middle is elided."""
    if len(text) <= head + tail:
        return text
    return text[:head] + "\n…\n" + text[-tail:]


def render_system_prompt(context: ChatContext) -> str:
    persona_block = ""
    if context.persona:
        persona_block = f"Your personality, in your own words: {context.persona.strip()}\n"
    return render_template(
        AUTHOR_AVATAR_TEMPLATE,
        {
            "author_name": context.author_name,
            "book_title": context.book_title,
            "chapter_title": context.chapter_title,
            "persona_block": persona_block,
            "chapter_excerpt": compress_text_for_context(context.chapter_content) or "(empty chapter)",
        },
    )


# ----------------------------
# Conversational providers
# ----------------------------

class ConversationalProvider(Protocol):
    def complete(self, utterance: str, context: ChatContext, history: Optional[List[Dict[str, str]]] = None) -> str: ...


class OpenAIChatProvider:
    """Chat-completions client for OpenAI-compatible endpoints."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        timeout_s: float = 60.0,
        retries: int = 0,
        temperature: float = 0.7,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_s = timeout_s
        self.retries = retries
        self.temperature = temperature

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def complete(self, utterance: str, context: ChatContext, history: Optional[List[Dict[str, str]]] = None) -> str:
        if not self.configured:
            raise ProviderUnavailable(
                "Conversational provider is not configured",
                detail={"where": "chat", "reason": "missing OPENAI_API_KEY"},
            )
        messages = [{"role": "system", "content": render_system_prompt(context)}]
        messages.extend(history or [])
        messages.append({"role": "user", "content": utterance})
        return self.call_chat(messages)

    def call_chat(self, messages: List[Dict[str, str]]) -> str:
        url = f"{self.base_url}/chat/completions"
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
        }
        headers = build_openai_headers(self.api_key)

        last_err = None
        for i in range(self.retries + 1):
            try:
                r = requests.post(url, json=payload, headers=headers, timeout=self.timeout_s)
                if r.status_code == 200:
                    data = r.json()
                    content = (data["choices"][0]["message"]["content"] or "").strip()
                    if content:
                        return content
                    last_err = {"status": r.status_code, "error": "empty completion"}
                else:
                    # capture a readable error body
                    try:
                        err_json = r.json()
                    except ValueError:
                        err_json = {"raw_text": r.text[:2000]}
                    last_err = {"status": r.status_code, "error": err_json}
            except requests.RequestException as e:
                last_err = {"exception": str(e)}
            except (KeyError, IndexError, TypeError, ValueError) as e:
                last_err = {"exception": f"malformed response: {e}"}
            if i < self.retries:
                time.sleep(0.8 * (2 ** i))

        logger.error("provider_error", where="chat", model=self.model, base_url=self.base_url, last_err=last_err)
        raise ProviderUnavailable(
            "Conversational provider failed",
            detail={"where": "chat", "model": self.model, "base_url": self.base_url, "last_err": last_err},
        )


class CannedChatProvider:
    """Deterministic stand-in for demos and tests.

    Picks from a small set of author-voiced replies with a seeded generator,
    so the same seed and the same turns give the same conversation.
    """

    RESPONSES = [
        'That\'s a fascinating perspective on "{chapter_title}"! In this chapter, I explore how {theme} relates to the broader themes of {book_title}.',
        "Great question about this section! What you're noticing here connects to the deeper meaning I was trying to convey about {theme}. Let me elaborate on that...",
        'I\'m glad you brought that up! This particular part of "{chapter_title}" was inspired by {insight}. What aspects resonate most with you?',
        "Interesting observation! In writing this chapter, I wanted readers to consider {thought}. How does this connect with your own experiences?",
        "That's exactly the kind of thinking I hoped this chapter would inspire! The relationship between {theme} and the overall narrative is something I explore further in later chapters.",
    ]
    THEMES = [
        "human creativity and technology",
        "the evolution of digital expression",
        "the intersection of art and innovation",
        "the future of creative collaboration",
        "the democratization of creative tools",
        "the balance between efficiency and authenticity",
    ]
    INSIGHTS = [
        "my own experiences with emerging creative technologies",
        "conversations with artists and technologists",
        "observing how creative communities adapt to new tools",
        "research into the history of creative innovation",
        "the changing relationship between creators and their audiences",
    ]
    THOUGHTS = [
        "how traditional creative processes are being transformed",
        "the importance of maintaining human agency in creative work",
        "the potential for technology to amplify rather than replace creativity",
        "the ethical implications of AI in creative fields",
        "how we can preserve authenticity in an increasingly digital world",
    ]
    KEYWORD_THEMES = [
        (("technology", "digital"), 0),
        (("creative", "art"), 1),
        (("future", "innovation"), 3),
    ]

    def __init__(self, seed: int = 7, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random(seed)

    def _theme(self, utterance: str) -> str:
        lowered = utterance.lower()
        for keywords, idx in self.KEYWORD_THEMES:
            if any(k in lowered for k in keywords):
                return self.THEMES[idx]
        return self.rng.choice(self.THEMES)

    def complete(self, utterance: str, context: ChatContext, history: Optional[List[Dict[str, str]]] = None) -> str:
        template = self.rng.choice(self.RESPONSES)
        return render_template(
            template,
            {
                "chapter_title": context.chapter_title,
                "book_title": context.book_title,
                "theme": self._theme(utterance),
                "insight": self.rng.choice(self.INSIGHTS),
                "thought": self.rng.choice(self.THOUGHTS),
            },
        )


# ----------------------------
# Narration provider
# ----------------------------

DEFAULT_VOICES = [
    Voice(
        id="EXAVITQu4vr4xnSDxMaL",
        name="Sarah (Professional Female)",
        category="premade",
        description="Professional, clear female voice perfect for narration",
    ),
    Voice(
        id="VR6AewLTigWG4xSOukaG",
        name="David (Professional Male)",
        category="premade",
        description="Authoritative male voice with excellent clarity",
    ),
    Voice(
        id="pNInz6obpgDQGcFmaJgB",
        name="Emma (Conversational Female)",
        category="premade",
        description="Warm, conversational female voice",
    ),
    Voice(
        id="yoZ06aMxZJJ28mfd3POQ",
        name="James (Conversational Male)",
        category="premade",
        description="Friendly, approachable male voice",
    ),
]

# mp3_44100_128: constant 128 kbit/s, so duration follows from the byte count
OUTPUT_FORMAT = "mp3_44100_128"
OUTPUT_BITRATE = 128_000


class NarrationProvider(Protocol):
    def synthesize_speech(self, text: str, voice_id: str, voice_settings: Optional[VoiceSettings] = None) -> SpeechResult: ...

    def list_voices(self) -> List[Voice]: ...


class ElevenLabsNarrationProvider:
    def __init__(self, api_key: str, base_url: str, model_id: str, timeout_s: float = 120.0) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model_id = model_id
        self.timeout_s = timeout_s
        if not self.api_key:
            logger.warning("narration_provider_unconfigured")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def synthesize_speech(self, text: str, voice_id: str, voice_settings: Optional[VoiceSettings] = None) -> SpeechResult:
        if not self.configured:
            raise ProviderUnavailable(
                "Narration provider is not configured",
                detail={"where": "narration", "reason": "missing ELEVENLABS_API_KEY"},
            )
        vs = voice_settings or VoiceSettings()
        url = f"{self.base_url}/text-to-speech/{voice_id}"
        payload = {"text": text, "model_id": self.model_id, "voice_settings": vs.model_dump()}
        try:
            r = requests.post(
                url,
                json=payload,
                params={"output_format": OUTPUT_FORMAT},
                headers=build_elevenlabs_headers(self.api_key, accept="audio/mpeg"),
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            logger.error("provider_error", where="narration", voice_id=voice_id, exception=str(e))
            raise ProviderUnavailable("Narration provider unreachable", detail={"where": "narration", "exception": str(e)}) from e

        if r.status_code != 200:
            try:
                body = r.json()
                err = body.get("detail", body) if isinstance(body, dict) else body
            except ValueError:
                err = r.text[:500]
            logger.error("provider_error", where="narration", voice_id=voice_id, status=r.status_code)
            raise ProviderUnavailable(
                f"Narration provider error: {r.status_code}",
                detail={"where": "narration", "status": r.status_code, "error": err},
            )

        audio = r.content
        return SpeechResult(audio_bytes=audio, duration_seconds=round(len(audio) * 8 / OUTPUT_BITRATE, 2))

    def list_voices(self) -> List[Voice]:
        """Provider voices, or the built-in list when the provider cannot answer."""
        if not self.configured:
            return list(DEFAULT_VOICES)
        try:
            r = requests.get(
                f"{self.base_url}/voices",
                headers=build_elevenlabs_headers(self.api_key),
                timeout=self.timeout_s,
            )
            r.raise_for_status()
            voices = r.json().get("voices", [])
            return [
                Voice(
                    id=v["voice_id"],
                    name=v["name"],
                    category=v.get("category") or "premade",
                    description=v.get("description") or f"{v['name']} voice",
                    preview_url=v.get("preview_url"),
                )
                for v in voices
            ]
        except (requests.RequestException, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("voices_fallback", reason=str(e))
            return list(DEFAULT_VOICES)
