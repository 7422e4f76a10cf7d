# chat.py
# Chapter-scoped conversations with the author avatar, and synthesis of the
# avatar's turns into a derived document.

from __future__ import annotations

from typing import Dict, List, Optional

import structlog

from models import BotReply, ChatContext, ChatMessage
from providers import ConversationalProvider
from repositories import ChatMessageRepository
from utils import new_id, now_ts

logger = structlog.get_logger("chat")

NOTHING_TO_SYNTHESIZE = "No chat content to synthesize."
SYNTHESIS_HEADING = "## Insights from Our Conversation"
SYNTHESIS_INTRO = "Through our discussion, several key themes emerged:"
SYNTHESIS_OUTRO = (
    "These insights expand on the original chapter content and represent the kind of "
    "deeper exploration that becomes possible through interactive dialogue."
)

# Smallest step between two turns of the same conversation
_TICK = 1e-6


class ConversationEngine:
    """Records chat turns and asks the provider for the avatar's replies.

    A turn is strictly sequential: the user message is stored, the provider is
    called, the bot message is stored, then the reply is returned. When the
    provider fails the user message stays in the log and the error propagates;
    no reply is fabricated.
    """

    def __init__(self, messages: ChatMessageRepository, provider: ConversationalProvider, history_in_prompt: int = 12) -> None:
        self.messages = messages
        self.provider = provider
        self.history_in_prompt = history_in_prompt

    def history(self, user_id: str, chapter_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        return self.messages.conversation(user_id, chapter_id, limit=limit)

    def _append(self, user_id: str, chapter_id: str, kind: str, content: str, after: Optional[float] = None) -> ChatMessage:
        ts = now_ts()
        if after is not None and ts <= after:
            ts = after + _TICK
        msg = ChatMessage(id=new_id(), user_id=user_id, chapter_id=chapter_id, type=kind, content=content, timestamp=ts)
        return self.messages.create(msg)

    def _prompt_history(self, previous: List[ChatMessage]) -> List[Dict[str, str]]:
        window = previous[-self.history_in_prompt:] if self.history_in_prompt else []
        return [{"role": "assistant" if m.type == "bot" else "user", "content": m.content} for m in window]

    def converse(self, user_id: str, chapter_id: str, utterance: str, context: ChatContext) -> BotReply:
        previous = self.history(user_id, chapter_id)
        last_ts = previous[-1].timestamp if previous else None

        user_msg = self._append(user_id, chapter_id, "user", utterance, after=last_ts)
        try:
            reply = self.provider.complete(utterance, context, history=self._prompt_history(previous))
        except Exception:
            logger.warning("chat_turn_failed", user_id=user_id, chapter_id=chapter_id, user_message_id=user_msg.id)
            raise

        bot_msg = self._append(user_id, chapter_id, "bot", reply, after=user_msg.timestamp)
        logger.info(
            "chat_turn_recorded",
            user_id=user_id,
            chapter_id=chapter_id,
            user_message_id=user_msg.id,
            bot_message_id=bot_msg.id,
        )
        return BotReply(content=bot_msg.content, timestamp=bot_msg.timestamp)


def _render_item(index: int, content: str) -> str:
    # continuation lines are indented so they stay inside their list item
    lines = content.strip().splitlines() or [""]
    indent = " " * (len(str(index)) + 2)
    rest = [f"{indent}{ln}" if ln.strip() else "" for ln in lines[1:]]
    return "\n".join([f"{index}. {lines[0]}"] + rest)


def render_synthesis(bot_messages: List[str]) -> str:
    if not bot_messages:
        return NOTHING_TO_SYNTHESIZE
    items = "\n\n".join(_render_item(i, msg) for i, msg in enumerate(bot_messages, start=1))
    return f"{SYNTHESIS_HEADING}\n\n{SYNTHESIS_INTRO}\n\n{items}\n\n{SYNTHESIS_OUTRO}"


class SynthesisEngine:
    """Folds the bot side of a conversation into a read-only document."""

    def __init__(self, messages: ChatMessageRepository) -> None:
        self.messages = messages

    def synthesize(self, user_id: str, chapter_id: str) -> str:
        history = self.messages.conversation(user_id, chapter_id)
        bot_messages = [m.content for m in history if m.type == "bot"]
        logger.info("chat_synthesized", user_id=user_id, chapter_id=chapter_id, items=len(bot_messages))
        return render_synthesis(bot_messages)
