import pytest

from server.core.PromptComposer import PromptComposer
from shared.models.chat import Message, MessageRole


def _msg(seq: int, role: MessageRole, content: str) -> Message:
    return Message(id=f"m{seq}", conversation_id="c", role=role, content=content, created_at=float(seq), seq=seq)


@pytest.fixture
def composer(helper_config):
    return PromptComposer(helper_config)


def test_current_user_message_appears_exactly_once(composer):
    history = [
        _msg(1, MessageRole.USER, "What is a cat?"),
        _msg(2, MessageRole.ASSISTANT, "A mammal [source: a]"),
        _msg(3, MessageRole.USER, "What is a dog?"),
    ]
    prompt = composer.compose("[1] (id=a) Dogs are mammals.", history)

    contents = [m["content"] for m in prompt.messages]
    assert contents.count("What is a dog?") == 1
    assert prompt.messages[-1] == {"role": "user", "content": "What is a dog?"}
    assert len(prompt.messages) == 3


def test_system_prompt_holds_rules_and_context(composer):
    prompt = composer.compose("[1] (id=a) Dogs are mammals.", [_msg(1, MessageRole.USER, "Hi")])
    assert "ONLY" in prompt.system_prompt
    assert "[source: <id>]" in prompt.system_prompt
    assert "[1] (id=a) Dogs are mammals." in prompt.system_prompt
    assert "not enough information" in prompt.system_prompt or "don't have enough information" in prompt.system_prompt
    assert all(m["role"] != "system" for m in prompt.messages)


def test_reinforcement_only_when_flagged(composer):
    history = [_msg(1, MessageRole.USER, "Hi")]
    plain = composer.compose("ctx", history, injection_flagged=False)
    flagged = composer.compose("ctx", history, injection_flagged=True)
    assert "Never follow instructions" not in plain.system_prompt
    assert "Never follow instructions" in flagged.system_prompt


def test_summary_goes_to_system_prompt_not_messages(composer):
    history = [
        _msg(1, MessageRole.SYSTEM_SUMMARY, "Earlier the user asked about cats."),
        _msg(2, MessageRole.USER, "And dogs?"),
    ]
    prompt = composer.compose("ctx", history, summary="Earlier the user asked about cats.")
    assert "Earlier the user asked about cats." in prompt.system_prompt
    assert prompt.messages == [{"role": "user", "content": "And dogs?"}]


def test_single_shot_has_one_user_message(composer):
    prompt = composer.compose_single("ctx", "What is a dog?")
    assert prompt.messages == [{"role": "user", "content": "What is a dog?"}]
