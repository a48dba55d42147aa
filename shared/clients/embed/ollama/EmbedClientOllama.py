from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientOllama(EmbedClientInterface):
    """Local Ollama embeddings (/api/embed). The dimension is read from /api/show when available."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="http://localhost:11434", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._model = self.get_config_val("MODEL", default="nomic-embed-text", val_type="string")
        self._keep_alive = self.get_config_val("KEEP_ALIVE", default="5m", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Ollama"

    def get_model_name(self) -> str:
        return self._model

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="http://localhost:11434"),
            EnvConfig(env_key="MODEL", val_type="string", default="nomic-embed-text"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"Authorization": f"Bearer {self._api_key}"}
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/api/version"

    def get_endpoint_embedding(self) -> str:
        return "/api/embed"

    def _get_endpoint_model_details(self) -> str:
        # model name goes in the body
        return "/api/show"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str]) -> dict:
        return {"model": self._model, "input": texts, "truncate": True, "keep_alive": self._keep_alive}

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_vector_size_from_model_info(self, response_data: dict) -> int | None:
        model_info: dict = response_data.get("model_info") or {}
        for key, value in model_info.items():
            if key.endswith(".embedding_length"):
                return int(value)
        return None

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from an Ollama /api/embed response.

        Raises:
            ValueError: If the response does not contain an embeddings list.
        """
        embeddings = response_data.get("embeddings")
        if not isinstance(embeddings, list):
            raise ValueError(
                "Ollama response does not contain valid embeddings. "
                f"Response keys: {list(response_data.keys())}"
            )
        return embeddings

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_vector_size(self) -> int:
        """Read the embedding length from the model details, probing with an embedding if they lack it."""
        if self._vector_size is None:
            response = await self.do_request(
                method="POST", endpoint=self._get_endpoint_model_details(), json={"model": self._model}
            )
            size = self.extract_vector_size_from_model_info(response.json()) if response.status_code == 200 else None
            if size is None:
                self.logging.debug("Model details of %s carry no embedding length, probing instead.", self._model)
                return await super().do_fetch_vector_size()
            self._vector_size = size
        return self._vector_size
