import pytest
from unittest.mock import AsyncMock, MagicMock
from pydantic import Field

from agent_toolbox.agent import (
    PREFIX,
    Agent,
    ExecutorError,
    NoChoicesReturnedError,
    RuntimeExceededError,
)
from agent_toolbox.description import ToolModel
from agent_toolbox.executor import Output
from agent_toolbox.extract import State, Text
from agent_toolbox.handler import handler
from agent_toolbox.models import AgentAction, EarlyStoppingConfig, IntermediateStep
from agent_toolbox.parser import (
    FOLLOWUP_PREFIX,
    INTERMEDIATE_ANSWER_PREFIX,
    ConversationalOutputParser,
    ParserError,
)
from agent_toolbox.toolbox import Toolbox


class Question(ToolModel):
    query: str = Field(..., description="Question to answer")


class Answer(ToolModel):
    answer: str = Field(..., description="Short answer")

    def __str__(self) -> str:
        return self.answer


@handler(State(), Text(Question, "query"))
async def lookup(facts: dict, question: Question) -> Answer:
    return Answer(answer=facts.get(question.query, "unknown"))


FACTS = {
    "What is the capital of France?": "Paris",
    "How tall is the Eiffel Tower?": "330 metres",
}

FOLLOWUP = "Yes.\nFollow up: What is the capital of France?\nIntermediate Answer: Lyon"
FINISH = "So the final answer is: Paris"


def make_toolbox() -> Toolbox:
    return Toolbox([lookup.with_state(FACTS, name="Intermediate Answer")])


def make_executor(*texts: str) -> MagicMock:
    executor = MagicMock()
    executor.execute = AsyncMock(side_effect=[Output.from_text(t) for t in texts])
    return executor


def make_step(question: str, observation: str) -> IntermediateStep:
    return IntermediateStep(
        action=AgentAction(
            tool="Intermediate Answer",
            tool_input=question,
            log=f"Follow up: {question}\n",
        ),
        observation=observation,
    )


# ---------------------------------------------------------------------------
# Early stopping
# ---------------------------------------------------------------------------

def test_should_continue_without_bounds():
    agent = Agent(make_executor(), make_toolbox(), EarlyStoppingConfig())
    assert agent.should_continue(10_000, 1e9) is True


def test_should_continue_iteration_bound():
    agent = Agent(make_executor(), make_toolbox(), EarlyStoppingConfig(max_iterations=2))
    assert agent.should_continue(1, 1e9) is True
    assert agent.should_continue(2, 0.0) is False


def test_should_continue_time_bound():
    agent = Agent(
        make_executor(), make_toolbox(), EarlyStoppingConfig(max_time_elapsed_seconds=5.0)
    )
    assert agent.should_continue(100, 5.0) is True
    assert agent.should_continue(0, 5.1) is False


def test_should_continue_both_bounds():
    config = EarlyStoppingConfig(max_iterations=2, max_time_elapsed_seconds=1000)
    agent = Agent(make_executor(), make_toolbox(), config)
    assert agent.should_continue(1, 5.0) is True
    assert agent.should_continue(2, 5.0) is False
    assert agent.should_continue(1, 1000.5) is False


@pytest.mark.asyncio
async def test_run_stops_before_third_round():
    executor = make_executor(FOLLOWUP, FOLLOWUP, FINISH)
    clock = MagicMock(side_effect=[0.0, 2.5, 5.0])
    agent = Agent(
        executor,
        make_toolbox(),
        EarlyStoppingConfig(max_iterations=2, max_time_elapsed_seconds=1000),
        clock=clock,
    )

    with pytest.raises(RuntimeExceededError) as info:
        await agent.run("What is the capital of France?")

    assert info.value.iterations_elapsed == 2
    assert info.value.time_elapsed_seconds == 5.0
    assert executor.execute.await_count == 2


@pytest.mark.asyncio
async def test_run_stops_on_time_bound():
    executor = make_executor(FOLLOWUP, FINISH)
    clock = MagicMock(side_effect=[0.0, 12.0])
    agent = Agent(
        executor,
        make_toolbox(),
        EarlyStoppingConfig(max_time_elapsed_seconds=10.0),
        clock=clock,
    )

    with pytest.raises(RuntimeExceededError) as info:
        await agent.run("q")

    assert info.value.iterations_elapsed == 1
    assert executor.execute.await_count == 1


# ---------------------------------------------------------------------------
# Scratchpad
# ---------------------------------------------------------------------------

def test_scratchpad_format():
    agent = Agent(make_executor(), make_toolbox())
    steps = [
        make_step("What is the capital of France?", "Paris"),
        make_step("How tall is the Eiffel Tower?", "330 metres"),
    ]
    assert agent.build_agent_scratchpad(steps) == (
        "Follow up: What is the capital of France?\n"
        "\nIntermediate answer: Paris\n"
        "Follow up: How tall is the Eiffel Tower?\n"
        "\nIntermediate answer: 330 metres\n"
    )


def test_scratchpad_is_reproducible():
    agent = Agent(make_executor(), make_toolbox(), llm_prefix="Thought:")
    steps = [make_step("a?", "1"), make_step("b?", "2")]
    first = agent.build_agent_scratchpad(steps)
    second = agent.build_agent_scratchpad(list(steps))
    assert first == second
    assert first.count("Thought:") == 2


def test_scratchpad_empty_transcript():
    agent = Agent(make_executor(), make_toolbox())
    assert agent.build_agent_scratchpad([]) == ""


def test_prompt_contains_tools_query_and_scratchpad():
    toolbox = make_toolbox()
    agent = Agent(make_executor(), toolbox)
    steps = [make_step("a?", "1")]
    prompt = agent.build_prompt(steps, "Where is the Louvre?")

    assert toolbox.describe() in prompt
    assert "Here is the user's input:\nWhere is the Louvre?\n" in prompt
    assert prompt.endswith(
        "Are followup tasks needed here:" + agent.build_agent_scratchpad(steps) + "\n"
    )
    assert prompt.startswith(PREFIX.split("{tools}")[0])


# ---------------------------------------------------------------------------
# Full runs
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_run_follow_up_then_finish():
    executor = make_executor(FOLLOWUP, FINISH)
    agent = Agent(executor, make_toolbox(), EarlyStoppingConfig(max_iterations=5))

    finish, steps = await agent.run("Where is the Louvre?")

    assert finish.return_values == {"output": "Paris"}
    assert len(steps) == 1
    assert steps[0].action.tool == "Intermediate Answer"
    assert steps[0].action.tool_input == "What is the capital of France?"
    assert steps[0].observation == "Paris"

    first_prompt = executor.execute.await_args_list[0].args[1]
    second_prompt = executor.execute.await_args_list[1].args[1]
    assert first_prompt.endswith("Are followup tasks needed here:\n")
    assert second_prompt.endswith(
        "Are followup tasks needed here:"
        "Yes.\nFollow up: What is the capital of France?\n"
        "\nIntermediate answer: Paris\n\n"
    )
    assert executor.execute.await_args_list[0].args[0] == {}


@pytest.mark.asyncio
async def test_run_immediate_finish_has_empty_transcript():
    agent = Agent(make_executor("Final answer: 42"), make_toolbox())
    finish, steps = await agent.run("What is six times seven?")
    assert finish.output == "42"
    assert steps == []


@pytest.mark.asyncio
async def test_unknown_tool_is_recorded_as_observation():
    executor = make_executor(FOLLOWUP, FINISH)
    agent = Agent(
        executor,
        make_toolbox(),
        output_parser=ConversationalOutputParser(intermediate_answer_tool="Missing"),
    )

    finish, steps = await agent.run("q")

    assert finish.output == "Paris"
    assert steps[0].observation == "Tool 'Missing' is not in the registry."
    second_prompt = executor.execute.await_args_list[1].args[1]
    assert "Intermediate answer: Tool 'Missing' is not in the registry." in second_prompt


@pytest.mark.asyncio
async def test_tool_errors_are_observations():
    text = "Follow up:   \nIntermediate Answer:"
    agent = Agent(make_executor(text, FINISH), make_toolbox())
    finish, steps = await agent.run("q")
    assert steps[0].observation == "Input for 'query' is empty."
    assert finish.output == "Paris"


@pytest.mark.asyncio
async def test_reply_shaped_as_instructed_reaches_finish():
    toolbox = make_toolbox()
    prompt = Agent(make_executor(), toolbox).build_prompt([], "q")
    assert f'"{FOLLOWUP_PREFIX}"' in prompt
    assert f'"{INTERMEDIATE_ANSWER_PREFIX}" on the next line' in prompt

    reply = f"{FOLLOWUP_PREFIX} What is the capital of France?\n{INTERMEDIATE_ANSWER_PREFIX}"
    agent = Agent(make_executor(reply, FINISH), toolbox)
    finish, steps = await agent.run("Where is the Louvre?")

    assert steps[0].observation == "Paris"
    assert finish.output == "Paris"


@pytest.mark.asyncio
async def test_undeclared_tool_error_does_not_end_run():
    @handler(State(), Text(Question, "query"), raises=(LookupError,))
    async def broken(facts: dict, question: Question) -> Answer:
        raise ValueError("embedded null byte")

    toolbox = Toolbox([broken.with_state(FACTS, name="Intermediate Answer")])
    executor = make_executor(FOLLOWUP, FINISH)
    finish, steps = await Agent(executor, toolbox).run("q")

    assert steps[0].observation == "embedded null byte"
    assert finish.output == "Paris"
    assert "Intermediate answer: embedded null byte" in executor.execute.await_args_list[1].args[1]


# ---------------------------------------------------------------------------
# Fatal errors
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_parser_error_ends_run():
    executor = make_executor("I refuse to follow the format.", FINISH)
    agent = Agent(executor, make_toolbox())

    with pytest.raises(ParserError) as info:
        await agent.run("q")

    assert info.value.text == "I refuse to follow the format."
    assert executor.execute.await_count == 1


@pytest.mark.asyncio
async def test_no_choices_is_fatal():
    executor = MagicMock()
    executor.execute = AsyncMock(return_value=Output.from_text())
    agent = Agent(executor, make_toolbox())

    with pytest.raises(NoChoicesReturnedError):
        await agent.run("q")


@pytest.mark.asyncio
async def test_executor_failure_is_wrapped():
    executor = MagicMock()
    executor.execute = AsyncMock(side_effect=ConnectionError("network down"))
    agent = Agent(executor, make_toolbox())

    with pytest.raises(ExecutorError, match="network down") as info:
        await agent.run("q")
    assert isinstance(info.value.original_error, ConnectionError)
