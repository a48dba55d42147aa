from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import ErrorKind, PipelineError


class EmbedClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # model and embedding config
        self.embed_distance = helper_config.get_string_val(f"{self.get_client_type().upper()}_DISTANCE", default="Cosine")
        self.embed_model_max_chars = helper_config.get_number_val(f"{self.get_client_type().upper()}_MODEL_MAX_CHARS", default=0)
        self._vector_size: int | None = None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "embed"

    @abstractmethod
    def get_model_name(self) -> str:
        """Returns the embedding model identifier (e.g. "@cf/baai/bge-base-en-v1.5")."""
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests.

        Returns:
            str: The endpoint path for embedding requests (e.g. "/api/embed")
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a raw embedding API response.

        Response format differs by backend:
        - Ollama /api/embed: {"embeddings": [[...], [...]]}
        - Workers AI: {"result": {"shape": [n, dim], "data": [[...], ...]}, "success": true}

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.
                May be shorter than the input when the backend dropped entries;
                do_embed() detects that.
        """
        pass

    def _prepare_texts(self, texts: list[str]) -> list[str]:
        if self.embed_model_max_chars and self.embed_model_max_chars > 0:
            limit = int(self.embed_model_max_chars)
            return [t[:limit] for t in texts]
        return texts

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """Embed one or more texts.

        Args:
            texts (list[str] | str): One or more texts to embed.

        Returns:
            list[list[float]]: One fixed-dimension vector per input, same order.

        Raises:
            PipelineError: EmbeddingFailure if the request fails or any input
                comes back without a vector. Never retried here.
        """
        texts = [texts] if isinstance(texts, str) else texts
        if not texts:
            return []
        body = self.get_embed_payload(self._prepare_texts(texts))
        try:
            response = await self.do_request(method="POST", endpoint=self.get_endpoint_embedding(), json=body)
        except Exception as exc:
            raise PipelineError(ErrorKind.EMBEDDING_FAILURE, f"embedding request to {self.get_engine_name()} failed: {exc}") from exc

        if response.status_code != 200:
            self.logging.error(
                "Embedding request failed: status %d, body: %s",
                response.status_code,
                response.text[:200],
            )
            raise PipelineError(ErrorKind.EMBEDDING_FAILURE, f"embedding request failed with status {response.status_code}")

        try:
            vectors = self.extract_embeddings_from_response(response.json())
        except ValueError as exc:
            raise PipelineError(ErrorKind.EMBEDDING_FAILURE, str(exc)) from exc

        if len(vectors) != len(texts) or any(not v for v in vectors):
            raise PipelineError(
                ErrorKind.EMBEDDING_FAILURE,
                f"provider returned {len(vectors)} vector(s) for {len(texts)} input(s)",
            )
        return vectors

    async def do_fetch_vector_size(self) -> int:
        """Determine the output dimension of the configured model by embedding a probe text.

        The result is cached for the lifetime of the client.
        """
        if self._vector_size is None:
            vectors = await self.do_embed(["dimension probe"])
            self._vector_size = len(vectors[0])
        return self._vector_size
