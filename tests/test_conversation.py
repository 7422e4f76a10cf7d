import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chat import ConversationEngine  # noqa: E402
from errors import ProviderUnavailable  # noqa: E402
from models import ChatContext  # noqa: E402
from providers import CannedChatProvider  # noqa: E402
from repositories import Repositories  # noqa: E402
from stores import InMemoryRecordStore  # noqa: E402

CTX = ChatContext(
    chapter_id="ch-1",
    chapter_title="The Lighthouse",
    chapter_content="The keeper counted the ships.",
    book_title="Coastlines",
    author_name="Mara Lin",
)


class RecordingProvider:
    def __init__(self, reply="Thank you for asking."):
        self.reply = reply
        self.calls = []

    def complete(self, utterance, context, history=None):
        self.calls.append((utterance, context, list(history or [])))
        return self.reply


class FailingProvider:
    def complete(self, utterance, context, history=None):
        raise ProviderUnavailable("down", detail={"where": "chat"})


def make_engine(provider, history_in_prompt=12):
    repos = Repositories(InMemoryRecordStore())
    return ConversationEngine(repos.messages, provider, history_in_prompt=history_in_prompt), repos


def test_converse_appends_user_then_bot():
    provider = RecordingProvider("The keeper is my grandfather.")
    engine, repos = make_engine(provider)

    reply = engine.converse("u1", "ch-1", "Who is the keeper?", CTX)

    msgs = engine.history("u1", "ch-1")
    assert [(m.type, m.content) for m in msgs] == [
        ("user", "Who is the keeper?"),
        ("bot", "The keeper is my grandfather."),
    ]
    assert msgs[1].timestamp > msgs[0].timestamp
    assert reply.content == "The keeper is my grandfather."
    assert reply.timestamp == msgs[1].timestamp
    assert provider.calls[0][1] == CTX


def test_each_turn_adds_exactly_two_messages():
    engine, _ = make_engine(RecordingProvider())
    for i in range(3):
        engine.converse("u1", "ch-1", f"q{i}", CTX)
        assert len(engine.history("u1", "ch-1")) == 2 * (i + 1)
    timestamps = [m.timestamp for m in engine.history("u1", "ch-1")]
    assert timestamps == sorted(timestamps)
    assert len(set(timestamps)) == len(timestamps)


def test_prompt_history_is_previous_turns_only():
    provider = RecordingProvider("r")
    engine, _ = make_engine(provider, history_in_prompt=2)
    engine.converse("u1", "ch-1", "first", CTX)
    engine.converse("u1", "ch-1", "second", CTX)
    engine.converse("u1", "ch-1", "third", CTX)

    assert provider.calls[0][2] == []
    # window of the two most recent stored messages, oldest first
    assert provider.calls[2][2] == [
        {"role": "user", "content": "second"},
        {"role": "assistant", "content": "r"},
    ]


def test_conversations_are_scoped_by_user_and_chapter():
    engine, _ = make_engine(RecordingProvider())
    engine.converse("u1", "ch-1", "hello", CTX)
    engine.converse("u2", "ch-1", "hi", CTX)
    engine.converse("u1", "ch-2", "hey", CTX)
    assert [m.content for m in engine.history("u1", "ch-1") if m.type == "user"] == ["hello"]
    assert len(engine.history("u2", "ch-1")) == 2


def test_provider_failure_keeps_user_message_and_propagates():
    engine, _ = make_engine(FailingProvider())
    with pytest.raises(ProviderUnavailable):
        engine.converse("u1", "ch-1", "anyone there?", CTX)

    msgs = engine.history("u1", "ch-1")
    assert [(m.type, m.content) for m in msgs] == [("user", "anyone there?")]


def test_history_limit_keeps_latest():
    engine, _ = make_engine(RecordingProvider())
    for i in range(3):
        engine.converse("u1", "ch-1", f"q{i}", CTX)
    latest = engine.history("u1", "ch-1", limit=2)
    assert [m.content for m in latest] == ["q2", "Thank you for asking."]


def test_canned_provider_is_deterministic_per_seed():
    def run(seed):
        p = CannedChatProvider(seed=seed)
        return [p.complete(q, CTX) for q in ("why?", "how?", "when?")]

    assert run(3) == run(3)
    assert all("{" not in reply for reply in run(3))


class FirstChoice:
    def choice(self, seq):
        return seq[0]


def test_canned_provider_picks_keyword_theme():
    reply = CannedChatProvider(rng=FirstChoice()).complete("What about the future?", CTX)
    assert reply == (
        'That\'s a fascinating perspective on "The Lighthouse"! In this chapter, I explore how '
        "the future of creative collaboration relates to the broader themes of Coastlines."
    )
