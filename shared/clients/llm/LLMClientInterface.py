from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig


class LLMClientInterface(ClientInterface):
    """Generation backend: generate(system_prompt, messages) -> text.

    Messages are passed in a provider-neutral form: a list of
    {"role": "user" | "assistant", "content": "..."} dicts, oldest first.
    Each engine decides where the system prompt goes (see shape_messages()).
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.max_tokens = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_MAX_TOKENS", default=2048))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "llm"

    @abstractmethod
    def get_model_name(self) -> str:
        """Returns the chat model identifier, reported to callers in x-model-used."""
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_chat(self) -> str:
        """Returns the endpoint path for chat/completion requests (e.g. "/v1/messages")."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def shape_messages(self, system_prompt: str, messages: list[dict]) -> tuple[str | None, list[dict]]:
        """Place the system prompt the way the backend expects it.

        Args:
            system_prompt (str): The composed system prompt.
            messages (list[dict]): Provider-neutral user/assistant turns.

        Returns:
            tuple[str | None, list[dict]]: (separate system parameter or None,
                message array to send).
        """
        pass

    @abstractmethod
    def get_chat_payload(self, system_prompt: str, messages: list[dict]) -> dict:
        """Build the backend-specific request body for a chat/completion request."""
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_chat_response(self, response_data: dict) -> str:
        """Extract the assistant reply text from a raw chat API response.

        Raises:
            ValueError: If the response does not contain a valid reply.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_generate(self, system_prompt: str, messages: list[dict]) -> str:
        """Send a chat/completion request and return the assistant reply text.

        Raises:
            httpx.TransportError: On network failures and timeouts.
            ClientRequestError: If the backend answers with a non-2xx status.
            ValueError: If the response does not contain a valid reply.
        """
        body = self.get_chat_payload(system_prompt, messages)
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_chat(),
            json=body,
            raise_on_error=True,
        )
        return self.extract_chat_response(response.json())
