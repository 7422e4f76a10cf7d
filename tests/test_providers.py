import sys
from pathlib import Path

import pytest
import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import providers  # noqa: E402
from errors import ProviderUnavailable  # noqa: E402
from models import ChatContext, VoiceSettings  # noqa: E402
from providers import (  # noqa: E402
    DEFAULT_VOICES,
    ElevenLabsNarrationProvider,
    OpenAIChatProvider,
    compress_text_for_context,
    render_system_prompt,
)

CTX = ChatContext(
    chapter_id="ch",
    chapter_title="Harvest",
    chapter_content="The fields turned gold.",
    book_title="Seasons",
    author_name="Iris Vale",
    persona="Gentle and curious.",
)


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, content=b"", text=""):
        self.status_code = status_code
        self._json = json_data
        self.content = content
        self.text = text

    def json(self):
        if self._json is None:
            raise ValueError("no json")
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")


def test_system_prompt_carries_author_book_chapter_and_persona():
    prompt = render_system_prompt(CTX)
    assert "You are Iris Vale" in prompt
    assert '"Seasons"' in prompt
    assert '"Harvest"' in prompt
    assert "Gentle and curious." in prompt
    assert "The fields turned gold." in prompt


def test_long_chapters_are_compressed():
    text = "a" * 5000
    out = compress_text_for_context(text, head=10, tail=5)
    assert out == "a" * 10 + "\n…\n" + "a" * 5


def test_openai_provider_posts_chat_completion(monkeypatch):
    seen = {}

    def fake_post(url, json=None, headers=None, timeout=None, **kw):
        seen.update(url=url, json=json, headers=headers, timeout=timeout)
        return FakeResponse(json_data={"choices": [{"message": {"content": "  I wrote it at dawn.  "}}]})

    monkeypatch.setattr(providers.requests, "post", fake_post)
    p = OpenAIChatProvider("sk-test", "https://llm.test/v1/", "gpt-test", timeout_s=5)

    out = p.complete("When did you write this?", CTX, history=[{"role": "user", "content": "hi"}])

    assert out == "I wrote it at dawn."
    assert seen["url"] == "https://llm.test/v1/chat/completions"
    assert seen["timeout"] == 5
    assert seen["headers"]["Authorization"] == "Bearer sk-test"
    roles = [m["role"] for m in seen["json"]["messages"]]
    assert roles == ["system", "user", "user"]
    assert seen["json"]["messages"][-1]["content"] == "When did you write this?"


def test_openai_provider_error_is_provider_unavailable(monkeypatch):
    calls = []

    def fake_post(*a, **kw):
        calls.append(1)
        return FakeResponse(status_code=500, json_data={"error": "overloaded"})

    monkeypatch.setattr(providers.requests, "post", fake_post)
    p = OpenAIChatProvider("sk-test", "https://llm.test/v1", "gpt-test")

    with pytest.raises(ProviderUnavailable) as exc:
        p.complete("hello", CTX)
    assert exc.value.detail["last_err"] == {"status": 500, "error": {"error": "overloaded"}}
    # no retries by default
    assert calls == [1]


def test_openai_provider_network_error(monkeypatch):
    def fake_post(*a, **kw):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(providers.requests, "post", fake_post)
    with pytest.raises(ProviderUnavailable) as exc:
        OpenAIChatProvider("sk", "https://llm.test", "m").complete("hello", CTX)
    assert "refused" in exc.value.detail["last_err"]["exception"]


def test_unconfigured_openai_provider_never_calls_out(monkeypatch):
    def fake_post(*a, **kw):
        raise AssertionError("must not be called")

    monkeypatch.setattr(providers.requests, "post", fake_post)
    with pytest.raises(ProviderUnavailable):
        OpenAIChatProvider("", "https://llm.test", "m").complete("hello", CTX)


def test_elevenlabs_synthesize_speech(monkeypatch):
    seen = {}
    audio = b"\xff\xfb" * 8000  # 16000 bytes

    def fake_post(url, json=None, params=None, headers=None, timeout=None):
        seen.update(url=url, json=json, params=params, headers=headers, timeout=timeout)
        return FakeResponse(content=audio)

    monkeypatch.setattr(providers.requests, "post", fake_post)
    p = ElevenLabsNarrationProvider("xi-key", "https://tts.test/v1", "eleven_test", timeout_s=9)

    result = p.synthesize_speech("Once upon a time.", "voice-1", VoiceSettings(stability=0.7))

    assert result.audio_bytes == audio
    assert result.duration_seconds == 1.0
    assert seen["url"] == "https://tts.test/v1/text-to-speech/voice-1"
    assert seen["params"] == {"output_format": "mp3_44100_128"}
    assert seen["headers"]["xi-api-key"] == "xi-key"
    assert seen["json"]["voice_settings"]["stability"] == 0.7
    assert seen["timeout"] == 9


def test_elevenlabs_error_status(monkeypatch):
    monkeypatch.setattr(
        providers.requests,
        "post",
        lambda *a, **kw: FakeResponse(status_code=401, json_data={"detail": {"message": "bad key"}}),
    )
    p = ElevenLabsNarrationProvider("xi-key", "https://tts.test/v1", "m")
    with pytest.raises(ProviderUnavailable) as exc:
        p.synthesize_speech("text", "voice-1")
    assert exc.value.detail["status"] == 401
    assert exc.value.detail["error"] == {"message": "bad key"}


def test_list_voices_from_provider(monkeypatch):
    payload = {"voices": [{"voice_id": "v1", "name": "Nova", "category": "cloned", "preview_url": "http://p"}]}
    monkeypatch.setattr(providers.requests, "get", lambda *a, **kw: FakeResponse(json_data=payload))
    voices = ElevenLabsNarrationProvider("xi-key", "https://tts.test/v1", "m").list_voices()
    assert [(v.id, v.name, v.category, v.description) for v in voices] == [("v1", "Nova", "cloned", "Nova voice")]


def test_list_voices_falls_back_to_defaults(monkeypatch):
    def boom(*a, **kw):
        raise requests.Timeout("slow")

    monkeypatch.setattr(providers.requests, "get", boom)
    assert ElevenLabsNarrationProvider("xi-key", "https://tts.test/v1", "m").list_voices() == DEFAULT_VOICES
    assert len(ElevenLabsNarrationProvider("", "https://tts.test/v1", "m").list_voices()) == 4
