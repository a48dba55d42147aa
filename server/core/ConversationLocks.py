import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import ErrorKind, PipelineError


class _Entry:
    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class ConversationLocks:
    """Serialises chat turns per conversation id.

    Entries are reference counted and dropped when nobody holds or waits for
    them, so the registry only contains conversations with turns in flight.
    """

    def __init__(self, helper_config: HelperConfig) -> None:
        self.logging = helper_config.get_logger()
        self.timeout = float(helper_config.get_number_val("CHAT_TURN_LOCK_TIMEOUT", default=60))
        self._entries: dict[str, _Entry] = {}

    @asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[None]:
        """Hold the lock of a conversation for the duration of a turn.

        Raises:
            PipelineError: RateLimited when the lock is not acquired within the timeout.
        """
        entry = self._entries.setdefault(conversation_id, _Entry())
        entry.users += 1
        try:
            try:
                await asyncio.wait_for(entry.lock.acquire(), timeout=self.timeout)
            except asyncio.TimeoutError:
                self.logging.warning("Conversation %s: timed out waiting for the previous turn.", conversation_id)
                raise PipelineError(
                    ErrorKind.RATE_LIMITED,
                    f"turn lock wait exceeded {self.timeout}s",
                    public_message="Another message in this conversation is still being processed. Please retry.",
                    retry_after=self.timeout,
                )
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(conversation_id) is entry:
                del self._entries[conversation_id]

    def get_active_count(self) -> int:
        return len(self._entries)
