import json

from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import ErrorKind, PipelineError
from shared.stores.BlobStoreInterface import BlobStoreInterface
from shared.stores.Database import Database


class BlobStoreSQLite(BlobStoreInterface):
    """Blob store kept in the blobs table of the service database."""

    def __init__(self, helper_config: HelperConfig, database: Database):
        super().__init__(helper_config=helper_config)
        self._db = database

    async def get(self, key: str) -> bytes | None:
        row = await self._db.fetch_one("SELECT value FROM blobs WHERE key = ?", (key,))
        return bytes(row["value"]) if row else None

    async def put(self, key: str, value: bytes, metadata: dict | None = None) -> None:
        if len(value) > self.MAX_VALUE_BYTES:
            raise PipelineError(
                ErrorKind.PAYLOAD_TOO_LARGE,
                f"blob '{key}' is {len(value)} bytes, limit is {self.MAX_VALUE_BYTES}",
            )
        await self._db.execute(
            "INSERT INTO blobs (key, value, metadata) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, metadata = excluded.metadata, updated_at = excluded.updated_at",
            (key, value, json.dumps(metadata or {})),
        )
        self.logging.debug("Stored blob %s (%d bytes)", key, len(value))

    async def delete(self, key: str) -> None:
        await self._db.execute("DELETE FROM blobs WHERE key = ?", (key,))

    async def clear(self, prefix: str = "") -> None:
        await self._db.execute("DELETE FROM blobs WHERE key LIKE ?", (f"{prefix}%",))
