from abc import ABC, abstractmethod

from shared.helper.HelperConfig import HelperConfig


class BlobStoreInterface(ABC):
    """Key/value store for full document contents ("doc:<id>" keys)."""

    # 25 MiB per value
    MAX_VALUE_BYTES = 25 * 1024 * 1024

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()

    @staticmethod
    def get_document_key(document_id: str) -> str:
        return f"doc:{document_id}"

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return the stored value or None if the key does not exist."""
        pass

    @abstractmethod
    async def put(self, key: str, value: bytes, metadata: dict | None = None) -> None:
        """Store value under key, replacing any previous value.

        Raises:
            PipelineError: PayloadTooLarge if value exceeds MAX_VALUE_BYTES.
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete key. Deleting a missing key is not an error."""
        pass

    @abstractmethod
    async def clear(self, prefix: str = "") -> None:
        pass
