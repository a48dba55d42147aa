from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientWorkersai(EmbedClientInterface):
    """Cloudflare Workers AI embeddings via the REST API (/ai/run/<model>)."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._account_id = self.get_config_val("ACCOUNT_ID", default=None, val_type="string")
        self._api_token = self.get_config_val("API_TOKEN", default=None, val_type="string")
        self._base_url = self.get_config_val("BASE_URL", default="https://api.cloudflare.com/client/v4", val_type="string")
        self._model = self.get_config_val("MODEL", default="@cf/baai/bge-base-en-v1.5", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Workersai"

    def get_model_name(self) -> str:
        return self._model

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="ACCOUNT_ID", val_type="string", default=None),
            EnvConfig(env_key="API_TOKEN", val_type="string", default=None),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_token}"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return f"{self._base_url.rstrip('/')}/accounts/{self._account_id}/ai"

    def _get_endpoint_healthcheck(self) -> str:
        return "/models/search"

    def get_endpoint_embedding(self) -> str:
        return f"/run/{self._model}"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str]) -> dict:
        return {"text": texts}

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract vectors from {"result": {"shape": [n, dim], "data": [[...]]}, "success": true}.

        Raises:
            ValueError: If the call was not successful or carries no data list.
        """
        if response_data.get("success") is False:
            raise ValueError(f"Workers AI embedding call failed: {response_data.get('errors')}")
        data = (response_data.get("result") or {}).get("data")
        if not isinstance(data, list):
            raise ValueError(
                "Workers AI response does not contain embedding data. "
                f"Response keys: {list(response_data.keys())}"
            )
        return data
