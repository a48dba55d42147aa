from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class LLMClientWorkersai(LLMClientInterface):
    """Cloudflare Workers AI text generation. The system prompt is the first message."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._account_id = self.get_config_val("ACCOUNT_ID", default=None, val_type="string")
        self._api_token = self.get_config_val("API_TOKEN", default=None, val_type="string")
        self._base_url = self.get_config_val("BASE_URL", default="https://api.cloudflare.com/client/v4", val_type="string")
        self._model = self.get_config_val("MODEL", default="@cf/meta/llama-3.1-8b-instruct", val_type="string")

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

    def _get_endpoint_chat(self) -> str:
        return f"/run/{self._model}"

    ################ PAYLOAD BUILDER ##################
    def shape_messages(self, system_prompt: str, messages: list[dict]) -> tuple[str | None, list[dict]]:
        turns = [
            {"role": m["role"], "content": m["content"]}
            for m in messages
            if m.get("role") in ("user", "assistant")
        ]
        return None, [{"role": "system", "content": system_prompt}, *turns]

    def get_chat_payload(self, system_prompt: str, messages: list[dict]) -> dict:
        _, shaped = self.shape_messages(system_prompt, messages)
        return {"messages": shaped, "max_tokens": self.max_tokens}

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_chat_response(self, response_data: dict) -> str:
        """Extract {"result": {"response": "..."}}.

        Raises:
            ValueError: If the call failed or carries no response text.
        """
        if response_data.get("success") is False:
            raise ValueError(f"Workers AI generation call failed: {response_data.get('errors')}")
        text = (response_data.get("result") or {}).get("response")
        if not isinstance(text, str):
            raise ValueError(
                "Workers AI chat response does not contain a valid reply. "
                f"Response keys: {list(response_data.keys())}"
            )
        return text
