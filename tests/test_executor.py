import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from agent_toolbox.executor import ImmediateOutput, OpenAIExecutor, Output


def make_client(response) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response)
    return client


def completion(*contents):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=c)) for c in contents]
    )


async def stream_of(*deltas):
    for delta in deltas:
        yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=delta))])


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def test_extract_last_body():
    assert ImmediateOutput(["first", "second"]).extract_last_body() == "second"
    assert ImmediateOutput([]).extract_last_body() is None


def test_output_requires_exactly_one_source():
    with pytest.raises(ValueError):
        Output()
    with pytest.raises(ValueError):
        Output(immediate=ImmediateOutput([]), stream=stream_of())


@pytest.mark.asyncio
async def test_streamed_output_is_joined_once():
    output = Output.from_stream(stream_of("Final ", "answer: ", None, "42"))
    first = await output.to_immediate()
    second = await output.to_immediate()
    assert first.extract_last_body() == "Final answer: 42"
    assert second is first


@pytest.mark.asyncio
async def test_empty_stream_has_no_body():
    output = Output.from_stream(stream_of())
    assert (await output.to_immediate()).extract_last_body() is None


# ---------------------------------------------------------------------------
# OpenAIExecutor
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_execute_sends_prompt_and_options():
    client = make_client(completion("Final answer: 42"))
    executor = OpenAIExecutor("test/model", client=client)

    output = await executor.execute({"temperature": 0.0}, "What is 6 * 7?")

    assert (await output.to_immediate()).extract_last_body() == "Final answer: 42"
    client.chat.completions.create.assert_awaited_once_with(
        messages=[{"role": "user", "content": "What is 6 * 7?"}],
        model="test/model",
        temperature=0.0,
    )


@pytest.mark.asyncio
async def test_execute_skips_empty_choices():
    client = make_client(completion(None, ""))
    output = await OpenAIExecutor("m", client=client).execute({}, "hi")
    assert (await output.to_immediate()).extract_last_body() is None


@pytest.mark.asyncio
async def test_execute_streaming():
    client = make_client(stream_of("So the final ", "answer is: yes"))
    output = await OpenAIExecutor("m", client=client).execute({"stream": True}, "hi")

    assert (await output.to_immediate()).extract_last_body() == "So the final answer is: yes"
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["stream"] is True
    assert kwargs["model"] == "m"
