import json
import sqlite3
import uuid

from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import Conversation, Message, MessageRole, Source
from shared.stores.Database import Database


def parse_sources(raw: str | None) -> list[Source] | None:
    """Parse the persisted sources JSON. Malformed values read as no sources."""
    if not raw:
        return None
    try:
        items = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(items, list):
        return None
    sources: list[Source] = []
    for item in items:
        if isinstance(item, dict) and item.get("id") is not None:
            sources.append(Source(
                id=str(item["id"]),
                text=str(item.get("text", "")),
                title=item.get("title"),
                score=item.get("score"),
            ))
    return sources


class ConversationStore:
    """Conversations and their messages.

    Messages are always read in (created_at, seq) order. Summarisation never
    deletes messages: it archives them and inserts one system-summary row in
    the same transaction.
    """

    def __init__(self, helper_config: HelperConfig, database: Database) -> None:
        self.logging = helper_config.get_logger()
        self._db = database

    @staticmethod
    def _to_message(row: sqlite3.Row) -> Message:
        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            role=MessageRole(row["role"]),
            content=row["content"],
            sources=parse_sources(row["sources"]),
            created_at=row["created_at"],
            seq=row["seq"],
            archived=bool(row["archived"]),
            client_key=row["client_key"],
            reply_to=row["reply_to"],
        )

    @staticmethod
    def _dump_sources(sources: list[Source] | None) -> str | None:
        if sources is None:
            return None
        return json.dumps([s.model_dump() for s in sources])

    ##########################################
    ############ CONVERSATIONS ###############
    ##########################################

    async def create_conversation(self) -> Conversation:
        row = await self._db.fetch_one(
            "INSERT INTO conversations (id) VALUES (?) RETURNING id, created_at", (str(uuid.uuid4()),)
        )
        return Conversation(id=row["id"], created_at=row["created_at"])

    async def conversation_exists(self, conversation_id: str) -> bool:
        row = await self._db.fetch_one("SELECT 1 FROM conversations WHERE id = ?", (conversation_id,))
        return row is not None

    ##########################################
    ############### MESSAGES #################
    ##########################################

    async def insert_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        sources: list[Source] | None = None,
        client_key: str | None = None,
        reply_to: str | None = None,
    ) -> Message:
        """Insert a message and return it as stored, with the database timestamp."""
        row = await self._db.fetch_one(
            "INSERT INTO messages (id, conversation_id, role, content, sources, client_key, reply_to) "
            "VALUES (?, ?, ?, ?, ?, ?, ?) RETURNING *",
            (
                str(uuid.uuid4()),
                conversation_id,
                role.value,
                content,
                self._dump_sources(sources),
                client_key,
                reply_to,
            ),
        )
        return self._to_message(row)

    async def find_by_client_key(self, conversation_id: str, client_key: str) -> Message | None:
        row = await self._db.fetch_one(
            "SELECT * FROM messages WHERE conversation_id = ? AND client_key = ?", (conversation_id, client_key)
        )
        return self._to_message(row) if row else None

    async def get_messages(self, conversation_id: str, include_archived: bool = False) -> list[Message]:
        sql = "SELECT * FROM messages WHERE conversation_id = ?"
        if not include_archived:
            sql += " AND archived = 0"
        rows = await self._db.fetch_all(sql + " ORDER BY created_at, seq", (conversation_id,))
        return [self._to_message(r) for r in rows]

    async def get_reply_to(self, conversation_id: str, message_id: str) -> Message | None:
        """Return the stored answer to the given user message, if it was answered.

        Only an assistant message linked by reply_to counts. Later answers to
        other questions are never taken for this one.
        """
        row = await self._db.fetch_one(
            "SELECT * FROM messages WHERE conversation_id = ? AND reply_to = ? AND role = 'assistant' "
            "ORDER BY seq LIMIT 1",
            (conversation_id, message_id),
        )
        return self._to_message(row) if row else None

    async def insert_summary_and_archive(
        self, conversation_id: str, summary: str, archived_ids: list[str]
    ) -> Message:
        """Archive the summarised messages and store the new summary atomically.

        Any previous summary is archived too, so there is at most one active
        system-summary per conversation.
        """
        statements: list = [
            (
                "UPDATE messages SET archived = 1 WHERE conversation_id = ? AND role = 'system-summary' AND archived = 0",
                (conversation_id,),
            )
        ]
        if archived_ids:
            placeholders = ",".join("?" for _ in archived_ids)
            statements.append((
                f"UPDATE messages SET archived = 1 WHERE conversation_id = ? AND id IN ({placeholders})",
                (conversation_id, *archived_ids),
            ))
        statements.append((
            "INSERT INTO messages (id, conversation_id, role, content) VALUES (?, ?, 'system-summary', ?) RETURNING *",
            (str(uuid.uuid4()), conversation_id, summary),
        ))
        results = await self._db.transaction(statements)
        self.logging.info(
            "Conversation %s: archived %d message(s) into a summary.", conversation_id, len(archived_ids)
        )
        return self._to_message(results[-1][0])
