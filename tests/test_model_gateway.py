import asyncio

import httpx
import pytest

from server.core.CircuitBreaker import BreakerState, CircuitBreakerRegistry
from server.core.ModelGateway import FALLBACK_MODEL_NAME, ModelGateway
from shared.clients.ClientInterface import ClientRequestError
from shared.models.chat import Source
from shared.models.errors import ErrorKind, PipelineError
from shared.models.retrieval import BuiltContext
from tests.fakes import FakeLLMClient


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


CONTEXT = BuiltContext(
    context_block="[1] (id=a) Dogs are mammals.",
    sources=[Source(id="a", text="Dogs are mammals.")],
    passages={"a": "Dogs are mammals."},
)
MESSAGES = [{"role": "user", "content": "What is a dog?"}]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    return []


def _gateway(helper_config, llm, clock, sleeps) -> ModelGateway:
    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    return ModelGateway(helper_config, llm, CircuitBreakerRegistry(helper_config, clock=clock), sleep=fake_sleep)


async def test_returns_model_answer(helper_config, clock, sleeps):
    llm = FakeLLMClient(script=["A dog is a mammal [source: a]."])
    result = await _gateway(helper_config, llm, clock, sleeps).generate("system", MESSAGES, CONTEXT)
    assert result.text == "A dog is a mammal [source: a]."
    assert result.model_used == "fake-model"
    assert not result.from_fallback


async def test_retries_transient_errors_with_backoff(helper_config, clock, sleeps):
    llm = FakeLLMClient(script=[httpx.ConnectError("down"), ClientRequestError("u", 503), "Recovered."])
    result = await _gateway(helper_config, llm, clock, sleeps).generate("system", MESSAGES, CONTEXT)
    assert result.text == "Recovered."
    assert len(llm.calls) == 3
    assert sleeps == pytest.approx([0.2, 0.4])


async def test_does_not_retry_permanent_errors(helper_config, clock, sleeps):
    llm = FakeLLMClient(script=[ClientRequestError("u", 401), "never used"])
    result = await _gateway(helper_config, llm, clock, sleeps).generate("system", MESSAGES, CONTEXT)
    assert result.from_fallback
    assert len(llm.calls) == 1
    assert sleeps == []


async def test_fallback_after_exhausted_retries_cites_context(helper_config, clock, sleeps):
    llm = FakeLLMClient(script=[httpx.ConnectError("down")] * 3)
    result = await _gateway(helper_config, llm, clock, sleeps).generate("system", MESSAGES, CONTEXT)
    assert result.from_fallback
    assert result.model_used == FALLBACK_MODEL_NAME
    assert "Dogs are mammals. [source: a]" in result.text
    assert len(llm.calls) == 3


async def test_fallback_is_deterministic(helper_config):
    assert ModelGateway.build_fallback(CONTEXT) == ModelGateway.build_fallback(CONTEXT)
    assert "[source:" not in ModelGateway.build_fallback(BuiltContext(context_block=""))


async def test_timeout_counts_as_transient(monkeypatch, helper_config, clock, sleeps):
    monkeypatch.setenv("LLM_GENERATION_TIMEOUT", "0.01")

    class SlowLLM(FakeLLMClient):
        async def do_generate(self, system_prompt, messages):
            self.calls.append((system_prompt, messages))
            await asyncio.sleep(1)
            return "too late"

    llm = SlowLLM()
    result = await _gateway(helper_config, llm, clock, sleeps).generate("system", MESSAGES, CONTEXT)
    assert result.from_fallback
    assert len(llm.calls) == 3


async def test_open_breaker_skips_provider_and_recovers(helper_config, clock, sleeps):
    llm = FakeLLMClient(script=[ClientRequestError("u", 400)] * 5)
    gateway = _gateway(helper_config, llm, clock, sleeps)

    for _ in range(5):
        assert (await gateway.generate("system", MESSAGES, CONTEXT)).from_fallback
    assert len(llm.calls) == 5

    # sixth call is served from the fallback without touching the provider
    sixth = await gateway.generate("system", MESSAGES, CONTEXT)
    assert sixth.from_fallback
    assert len(llm.calls) == 5

    clock.now += 30
    llm.script = ["Back online [source: a]."]
    trial = await gateway.generate("system", MESSAGES, CONTEXT)
    assert not trial.from_fallback
    assert gateway._breaker.get_state() == BreakerState.CLOSED


async def test_cancelled_call_does_not_count(helper_config, clock, sleeps):
    started = asyncio.Event()

    class HangingLLM(FakeLLMClient):
        async def do_generate(self, system_prompt, messages):
            started.set()
            await asyncio.sleep(60)
            return "never"

    gateway = _gateway(helper_config, HangingLLM(), clock, sleeps)
    task = asyncio.create_task(gateway.generate("system", MESSAGES, CONTEXT))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    snapshot = gateway._breaker.get_snapshot()
    assert snapshot["state"] == "closed"
    assert snapshot["failureCount"] == 0


async def test_summarize_raises_instead_of_falling_back(helper_config, clock, sleeps):
    llm = FakeLLMClient(script=[ClientRequestError("u", 400)])
    with pytest.raises(PipelineError) as exc_info:
        await _gateway(helper_config, llm, clock, sleeps).summarize("User: hi")
    assert exc_info.value.kind == ErrorKind.GENERATION_FAILURE
