import asyncio
from typing import Awaitable, Callable

from shared.clients.ClientInterface import is_transient_error
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import ErrorKind, PipelineError
from shared.models.retrieval import BuiltContext, GenerationResult
from server.core.CircuitBreaker import CircuitBreakerRegistry

FALLBACK_MODEL_NAME = "fallback"
FALLBACK_PASSAGE_LENGTH = 400

SUMMARY_SYSTEM_PROMPT = (
    "You summarize conversations between a user and an assistant. "
    "Write a concise summary of the facts, questions and answers so the conversation can continue. "
    "Do not add information that is not in the transcript and do not include citation markers."
)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, asyncio.TimeoutError) or is_transient_error(exc)


class ModelGateway:
    """Calls the generation provider behind a timeout, retries and a circuit breaker.

    generate() never raises for provider problems: when the breaker is open or
    every attempt failed it answers with a deterministic text built from the
    retrieved passages. summarize() raises GenerationFailure instead, because
    a made-up summary is worse than no summary.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        llm_client: LLMClientInterface,
        breakers: CircuitBreakerRegistry,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._llm_client = llm_client
        self._breaker = breakers.get(llm_client.get_engine_name())
        self._sleep = sleep
        self.timeout = float(helper_config.get_number_val("LLM_GENERATION_TIMEOUT", default=30))
        self.max_retries = int(helper_config.get_number_val("LLM_MAX_RETRIES", default=2))
        self.backoff_base = float(helper_config.get_number_val("LLM_RETRY_BACKOFF", default=0.2))

    def get_model_name(self) -> str:
        return self._llm_client.get_model_name()

    ##########################################
    ################ CALLS ###################
    ##########################################

    async def _call_with_retry(self, system_prompt: str, messages: list[dict]) -> str:
        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(
                    self._llm_client.do_generate(system_prompt, messages), timeout=self.timeout
                )
            except Exception as exc:
                if attempt >= self.max_retries or not _is_retryable(exc):
                    raise
                delay = self.backoff_base * (2 ** attempt)
                attempt += 1
                self.logging.warning(
                    "Generation attempt %d failed (%s), retrying in %.1fs.", attempt, type(exc).__name__, delay
                )
                await self._sleep(delay)

    async def _guarded_call(self, system_prompt: str, messages: list[dict]) -> str | None:
        """Run one gateway call through the breaker. Returns None when the provider is unavailable."""
        if not self._breaker.allow_request():
            self.logging.warning("Circuit breaker for '%s' is open, skipping the provider.", self._breaker.name)
            return None
        try:
            text = await self._call_with_retry(system_prompt, messages)
        except asyncio.CancelledError:
            # abandoned by the caller: neither success nor failure
            self._breaker.release()
            raise
        except Exception as exc:
            self._breaker.record_failure()
            self.logging.error("Generation failed after retries: %s: %s", type(exc).__name__, exc)
            return None
        self._breaker.record_success()
        return text

    async def generate(self, system_prompt: str, messages: list[dict], context: BuiltContext) -> GenerationResult:
        """Generate an answer, or fall back to the retrieved passages.

        Args:
            system_prompt (str): The composed system prompt.
            messages (list[dict]): Provider-neutral user/assistant turns.
            context (BuiltContext): Retrieved context, used for the fallback answer.
        """
        text = await self._guarded_call(system_prompt, messages)
        if text is None:
            return GenerationResult(text=self.build_fallback(context), model_used=FALLBACK_MODEL_NAME, from_fallback=True)
        return GenerationResult(text=text, model_used=self.get_model_name())

    async def summarize(self, transcript: str) -> str:
        """Summarise a conversation transcript.

        Raises:
            PipelineError: GenerationFailure when the provider is unavailable
                or returns an empty summary.
        """
        text = await self._guarded_call(SUMMARY_SYSTEM_PROMPT, [{"role": "user", "content": transcript}])
        if not text or not text.strip():
            raise PipelineError(ErrorKind.GENERATION_FAILURE, "summary generation unavailable or empty")
        return text.strip()

    ##########################################
    ############### FALLBACK #################
    ##########################################

    @staticmethod
    def build_fallback(context: BuiltContext) -> str:
        """Deterministic answer made of the retrieved passages, no model call."""
        if not context.sources:
            return (
                "The answer service is temporarily unavailable and no relevant documents were found. "
                "Please try again later."
            )
        lines = [
            "The answer service is temporarily unavailable. "
            "These are the most relevant passages from the knowledge base:",
            "",
        ]
        for source in context.sources:
            passage = " ".join(context.passages.get(source.id, source.text).split())
            if len(passage) > FALLBACK_PASSAGE_LENGTH:
                passage = passage[: FALLBACK_PASSAGE_LENGTH - 3].rstrip() + "..."
            lines.append(f"- {passage} [source: {source.id}]")
        return "\n".join(lines)
