import math
from enum import Enum

from pydantic import BaseModel, Field

from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import Message, MessageRole, Source
from shared.models.errors import PipelineError
from shared.stores.ConversationStore import ConversationStore
from server.core.CitationValidator import strip_citations
from server.core.ModelGateway import ModelGateway

TOKENS_PER_WORD = 1.3
TOKENS_PER_MESSAGE = 4
# user turns that always stay verbatim in the window
PROTECTED_USER_TURNS = 2


class MemoryState(str, Enum):
    FRESH = "fresh"
    ACTIVE = "active"
    OVER_LIMIT = "over-limit"


class WindowedHistory(BaseModel):
    """History to send to the model: an optional summary plus verbatim turns, oldest first."""

    summary: str | None = None
    messages: list[Message] = Field(default_factory=list)
    summarized: bool = False


def estimate_tokens(messages: list[Message]) -> int:
    """Rough token count: words x 1.3 plus a fixed overhead per message."""
    return sum(math.ceil(len(m.content.split()) * TOKENS_PER_WORD) + TOKENS_PER_MESSAGE for m in messages)


class ConversationMemory:
    """Loads, windows and persists conversation history.

    Once the verbatim history exceeds MAX_CHAT_HISTORY messages (or the token
    estimate exceeds CHAT_TOKEN_THRESHOLD) the older messages are folded into
    a system-summary message. Folded messages are archived, not deleted.
    """

    def __init__(self, helper_config: HelperConfig, store: ConversationStore, gateway: ModelGateway) -> None:
        self.logging = helper_config.get_logger()
        self._store = store
        self._gateway = gateway
        self.window = int(helper_config.get_number_val("MAX_CHAT_HISTORY", default=12))
        self.token_threshold = int(helper_config.get_number_val("CHAT_TOKEN_THRESHOLD", default=6000))

    ##########################################
    ############### LOAD/SAVE ################
    ##########################################

    async def load_history(self, conversation_id: str) -> list[Message]:
        """Active (non-archived) messages in (created_at, seq) order, summaries included."""
        return await self._store.get_messages(conversation_id)

    async def persist(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        sources: list[Source] | None = None,
        client_key: str | None = None,
        reply_to: str | None = None,
    ) -> Message:
        """Store a message. The returned message carries the database timestamp."""
        return await self._store.insert_message(
            conversation_id, role, content, sources=sources, client_key=client_key, reply_to=reply_to
        )

    ##########################################
    ################ WINDOW ##################
    ##########################################

    def get_state(self, history: list[Message]) -> MemoryState:
        turns = [m for m in history if m.role != MessageRole.SYSTEM_SUMMARY]
        if not turns:
            return MemoryState.FRESH
        if len(turns) > self.window or estimate_tokens(history) > self.token_threshold:
            return MemoryState.OVER_LIMIT
        return MemoryState.ACTIVE

    def _split_point(self, turns: list[Message], over_count: bool) -> int:
        """Index of the first message kept verbatim."""
        keep = self.window if over_count else max(self.window // 2, 1)
        start = max(len(turns) - keep, 0)
        user_indexes = [i for i, m in enumerate(turns) if m.role == MessageRole.USER]
        if user_indexes:
            protected_from = user_indexes[-PROTECTED_USER_TURNS:][0]
            start = min(start, protected_from)
        return start

    @staticmethod
    def _transcript(previous_summary: str | None, messages: list[Message]) -> str:
        parts: list[str] = []
        if previous_summary:
            parts.append(f"Summary so far:\n{previous_summary}\n")
        parts.append("Conversation:")
        for m in messages:
            speaker = "User" if m.role == MessageRole.USER else "Assistant"
            parts.append(f"{speaker}: {strip_citations(m.content)}")
        return "\n".join(parts)

    async def apply_window(self, conversation_id: str, history: list[Message]) -> WindowedHistory:
        """Bound the history sent to the model.

        Under the limits the history is returned unchanged. Over them, the
        messages before the kept tail (and any previous summary) are folded
        into a new summary which is persisted while the folded messages are
        archived. If summarising fails the full history is used for this turn.
        """
        summaries = [m for m in history if m.role == MessageRole.SYSTEM_SUMMARY]
        previous_summary = summaries[-1].content if summaries else None
        turns = [m for m in history if m.role != MessageRole.SYSTEM_SUMMARY]
        unchanged = WindowedHistory(summary=previous_summary, messages=turns)

        over_count = len(turns) > self.window
        over_tokens = estimate_tokens(history) > self.token_threshold
        if not over_count and not over_tokens:
            return unchanged

        start = self._split_point(turns, over_count)
        overflow, kept = turns[:start], turns[start:]
        if not overflow:
            return unchanged

        try:
            summary = strip_citations(await self._gateway.summarize(self._transcript(previous_summary, overflow)))
            if not summary:
                self.logging.warning("Conversation %s: summary was empty, using the full history.", conversation_id)
                return unchanged
            await self._store.insert_summary_and_archive(conversation_id, summary, [m.id for m in overflow])
        except PipelineError as exc:
            self.logging.error(
                "Conversation %s: summarisation failed (%s), using the full history for this turn.",
                conversation_id,
                exc,
            )
            return unchanged

        self.logging.info(
            "Conversation %s: summarised %d message(s), keeping %d.", conversation_id, len(overflow), len(kept)
        )
        return WindowedHistory(summary=summary, messages=kept, summarized=True)
