from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.clients.rag.models.VectorRecord import VectorRecord
from shared.helper.HelperConfig import HelperConfig
from shared.models.retrieval import RetrievalMatch


class RAGClientInterface(ClientInterface):
    """Vector index backend: query by similarity, upsert records, delete by id.

    The embedding dimension is fixed when the index is created and must match
    the embedder for the lifetime of the index (see do_ensure_collection()).
    """

    # max ids per delete request
    DELETE_BATCH_SIZE = 1000

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "rag"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_collection(self) -> str:
        """Returns the endpoint path describing the collection/index (e.g. "/collections/notes")."""
        pass

    @abstractmethod
    def _get_endpoint_create_collection(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_query(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_upsert(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_delete(self) -> str:
        pass

    @abstractmethod
    def _get_method_create_collection(self) -> str:
        """Returns the HTTP method of create requests ("PUT" for Qdrant, "POST" for Vectorize)."""
        pass

    @abstractmethod
    def _get_method_upsert(self) -> str:
        """Returns the HTTP method of upsert requests ("PUT" for Qdrant, "POST" for Vectorize)."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        pass

    @abstractmethod
    def get_query_payload(self, vector: list[float], top_k: int, include_metadata: bool) -> dict:
        pass

    @abstractmethod
    def get_upsert_body(self, records: list[VectorRecord]) -> tuple[str, str]:
        """Serialise records for an upsert request.

        Returns:
            tuple[str, str]: (request body, content type)
        """
        pass

    @abstractmethod
    def get_delete_payload(self, ids: list[str]) -> dict:
        pass

    ################ RESPONSE PARSER ##################
    @abstractmethod
    def extract_matches(self, raw_response: dict) -> list[RetrievalMatch]:
        """Convert a raw query response into ranked matches (best first)."""
        pass

    @abstractmethod
    def extract_vector_size(self, raw_response: dict) -> int | None:
        """Read the configured dimension from a collection description response."""
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_vector_size(self) -> int | None:
        """Return the dimension the collection was created with, or None if it does not exist."""
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_collection())
        if resp.status_code == 404:
            return None
        if resp.status_code >= 300:
            resp.raise_for_status()
        return self.extract_vector_size(resp.json())

    async def do_create_collection(self, vector_size: int, distance: str = "Cosine") -> None:
        """Create the collection/index with a fixed dimension."""
        await self.do_request(
            method=self._get_method_create_collection(),
            json=self.get_create_collection_payload(vector_size, distance),
            endpoint=self._get_endpoint_create_collection(),
            raise_on_error=True,
        )

    async def do_ensure_collection(self, vector_size: int, distance: str = "Cosine") -> None:
        """Create the collection if missing, otherwise verify its dimension.

        Raises:
            ValueError: If the existing collection has a different dimension than the embedder.
        """
        existing = await self.do_fetch_vector_size()
        if existing is None:
            self.logging.info(
                "Creating %s collection with dimension %d (%s).", self.get_engine_name(), vector_size, distance
            )
            await self.do_create_collection(vector_size, distance)
            return
        if existing != vector_size:
            raise ValueError(
                f"Vector index dimension {existing} does not match embedding dimension {vector_size}. "
                "Recreate the index or configure the matching embedding model."
            )
        self.logging.info("%s collection already exists (dimension %d).", self.get_engine_name(), existing)

    async def do_query(self, vector: list[float], top_k: int, include_metadata: bool = True) -> list[RetrievalMatch]:
        """Return the top_k nearest neighbours of vector, best first. Never mutates the index."""
        resp = await self.do_request(
            method="POST",
            json=self.get_query_payload(vector, top_k, include_metadata),
            endpoint=self._get_endpoint_query(),
            raise_on_error=True,
        )
        matches = self.extract_matches(resp.json())
        return sorted(matches, key=lambda m: m.score, reverse=True)[:top_k]

    async def do_upsert(self, records: list[VectorRecord]) -> None:
        """Insert new records or replace records with the same id."""
        if not records:
            return
        body, content_type = self.get_upsert_body(records)
        await self.do_request(
            method=self._get_method_upsert(),
            content=body,
            endpoint=self._get_endpoint_upsert(),
            additional_headers={"Content-Type": content_type},
            raise_on_error=True,
        )

    async def do_delete_by_ids(self, ids: list[str]) -> None:
        """Delete records by id, in batches of DELETE_BATCH_SIZE."""
        for start in range(0, len(ids), self.DELETE_BATCH_SIZE):
            batch = ids[start: start + self.DELETE_BATCH_SIZE]
            await self.do_request(
                method="POST",
                json=self.get_delete_payload(batch),
                endpoint=self._get_endpoint_delete(),
                raise_on_error=True,
            )
