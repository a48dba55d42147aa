from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class LLMClientAnthropic(LLMClientInterface):
    """Anthropic Messages API. The system prompt travels as the separate "system" field."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="https://api.anthropic.com", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._model = self.get_config_val("MODEL", default="claude-haiku-4-5-20251001", val_type="string")
        self._api_version = self.get_config_val("API_VERSION", default="2023-06-01", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Anthropic"

    def get_model_name(self) -> str:
        return self._model

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"x-api-key": self._api_key, "anthropic-version": self._api_version}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/v1/models"

    def _get_endpoint_chat(self) -> str:
        return "/v1/messages"

    ################ PAYLOAD BUILDER ##################
    def shape_messages(self, system_prompt: str, messages: list[dict]) -> tuple[str | None, list[dict]]:
        """Keep only user/assistant turns, starting with a user turn and alternating roles.

        Consecutive turns with the same role (e.g. a user message whose earlier
        turn never got an answer) are merged into one.
        """
        shaped: list[dict] = []
        for message in messages:
            role = message.get("role")
            if role not in ("user", "assistant"):
                continue
            if not shaped and role == "assistant":
                continue
            if shaped and shaped[-1]["role"] == role:
                shaped[-1] = {"role": role, "content": f"{shaped[-1]['content']}\n\n{message['content']}"}
            else:
                shaped.append({"role": role, "content": message["content"]})
        return system_prompt, shaped

    def get_chat_payload(self, system_prompt: str, messages: list[dict]) -> dict:
        system, shaped = self.shape_messages(system_prompt, messages)
        return {
            "model": self._model,
            "max_tokens": self.max_tokens,
            "system": system,
            "messages": shaped,
        }

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_chat_response(self, response_data: dict) -> str:
        """Join the text blocks of a Messages API response.

        Raises:
            ValueError: If the response has no text block.
        """
        blocks = response_data.get("content") or []
        texts = [b.get("text", "") for b in blocks if isinstance(b, dict) and b.get("type") == "text"]
        if not texts:
            raise ValueError(
                "Anthropic response does not contain a text block. "
                f"Response keys: {list(response_data.keys())}"
            )
        return "\n".join(texts)
