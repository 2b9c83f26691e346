# agent.py
# Self-ask agent loop.
#
# The Agent is the kernel. The model is a passive responder — this class owns
# all control flow, state and termination. Tools are reached only through the
# Toolbox.
#
# Control flow, one round at a time:
#   early-stopping check → build prompt (tools + query + scratchpad)
#   → model plan → parse → Finish? return
#   → invoke tool → record IntermediateStep → next round
#
# All terminal output is delegated to display.py — no formatting here.

import time
from typing import Callable

from agent_toolbox import display
from agent_toolbox.executor import Executor
from agent_toolbox.handler import Err
from agent_toolbox.models import (
    AgentAction,
    AgentFinish,
    EarlyStoppingConfig,
    IntermediateStep,
)
from agent_toolbox.parser import ConversationalOutputParser, ParserError
from agent_toolbox.toolbox import Toolbox

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class AgentError(Exception):
    """Base class for failures that end an agent run."""


class ExecutorError(AgentError):
    """The text-generation capability raised while producing a plan."""

    def __init__(self, original_error: Exception) -> None:
        self.original_error = original_error
        super().__init__(f"Executor failed: {original_error}")


class NoChoicesReturnedError(AgentError):
    """The model returned no completion body. Always fatal."""

    def __init__(self) -> None:
        super().__init__("The model returned no choices.")


class RuntimeExceededError(AgentError):
    """An early-stopping bound was crossed before the model finished."""

    def __init__(self, iterations_elapsed: int, time_elapsed_seconds: float) -> None:
        self.iterations_elapsed = iterations_elapsed
        self.time_elapsed_seconds = time_elapsed_seconds
        super().__init__(
            f"Runtime exceeded after {iterations_elapsed} iteration(s) "
            f"and {time_elapsed_seconds:.2f}s without a final answer."
        )


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

PREFIX = """\
Assistant is a large language model.

Assistant is designed to be able to assist with a wide range of tasks, from \
answering simple questions to providing in-depth explanations and discussions \
on a wide range of topics. As a language model, Assistant is able to generate \
human-like text based on the input it receives, allowing it to engage in \
natural-sounding conversations and provide responses that are coherent and \
relevant to the topic at hand.

When a follow-up question would help, write "Follow up:" followed by the \
question, then "Intermediate Answer:" on the next line, and stop there; the \
answer will be filled in for you. \
When you know the answer, write "So the final answer is:" followed by it.

{tools}

Here is the user's input:
{input}

Are followup tasks needed here:{agent_scratchpad}
"""

OBSERVATION_PREFIX = "Intermediate answer: "
LLM_PREFIX = ""


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


class Agent:
    """
    Bounded plan → parse → act → record loop.

    Example:
        agent = Agent(
            OpenAIExecutor("anthropic/claude-3.5-haiku"),
            toolbox,
            EarlyStoppingConfig(max_iterations=10, max_time_elapsed_seconds=30.0),
        )
        finish, steps = await agent.run("Who won the 2018 World Cup?")
    """

    def __init__(
        self,
        executor: Executor,
        tools: Toolbox,
        early_stopping_config: EarlyStoppingConfig | None = None,
        *,
        output_parser: ConversationalOutputParser | None = None,
        observation_prefix: str = OBSERVATION_PREFIX,
        llm_prefix: str = LLM_PREFIX,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.executor = executor
        self.tools = tools
        self.early_stopping_config = early_stopping_config or EarlyStoppingConfig()
        self.output_parser = output_parser or ConversationalOutputParser()
        self.observation_prefix = observation_prefix
        self.llm_prefix = llm_prefix
        self._clock = clock

    # ------------------------------------------------------------------
    # Early stopping
    # ------------------------------------------------------------------

    def should_continue(self, iterations_elapsed: int, time_elapsed_seconds: float) -> bool:
        config = self.early_stopping_config
        if config.max_iterations is not None and iterations_elapsed >= config.max_iterations:
            return False
        if (
            config.max_time_elapsed_seconds is not None
            and time_elapsed_seconds > config.max_time_elapsed_seconds
        ):
            return False
        return True

    # ------------------------------------------------------------------
    # Prompt construction
    # ------------------------------------------------------------------

    def build_agent_scratchpad(self, intermediate_steps: list[IntermediateStep]) -> str:
        """Render the transcript as the text the model continues from."""
        scratchpad = ""
        for step in intermediate_steps:
            scratchpad += step.action.log
            scratchpad += f"\n{self.observation_prefix}{step.observation}\n{self.llm_prefix}"
        return scratchpad

    def build_prompt(self, intermediate_steps: list[IntermediateStep], query: str) -> str:
        return PREFIX.format(
            tools=self.tools.to_prompt(),
            input=query,
            agent_scratchpad=self.build_agent_scratchpad(intermediate_steps),
        )

    # ------------------------------------------------------------------
    # Rounds
    # ------------------------------------------------------------------

    async def plan(self, intermediate_steps: list[IntermediateStep], query: str) -> str:
        """Ask the model what to do next. Returns its raw text."""
        prompt = self.build_prompt(intermediate_steps, query)
        display.calling_model()
        try:
            output = await self.executor.execute({}, prompt)
            immediate = await output.to_immediate()
        except Exception as exc:
            raise ExecutorError(exc) from exc

        body = immediate.extract_last_body()
        if body is None:
            raise NoChoicesReturnedError()
        display.plan_received(body)
        return body

    async def act(self, action: AgentAction) -> IntermediateStep:
        """Invoke the requested tool. An unknown tool becomes the observation."""
        display.action_taken(action)
        outcome = await self.tools.invoke(action.tool, action.tool_input)
        if isinstance(outcome, Err):
            display.tool_not_found(action.tool)
        else:
            display.observation_received(outcome.value)
        return IntermediateStep(action=action, observation=str(outcome))

    async def take_next_step(
        self, intermediate_steps: list[IntermediateStep], query: str
    ) -> IntermediateStep | AgentFinish:
        output = await self.plan(intermediate_steps, query)
        decision = self.output_parser.parse(output)
        if isinstance(decision, AgentFinish):
            return decision
        return await self.act(decision)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self, query: str) -> tuple[AgentFinish, list[IntermediateStep]]:
        """
        Run rounds until the model finishes or a stopping bound is crossed.

        Returns the Finish and the full transcript. ParserError,
        NoChoicesReturnedError and ExecutorError end the run immediately;
        RuntimeExceededError is raised when the bounds stop it.
        """
        intermediate_steps: list[IntermediateStep] = []
        iterations = 0
        start = self._clock()
        elapsed = 0.0

        display.run_started(query, self.tools.names)

        while self.should_continue(iterations, elapsed):
            display.round_start(iterations, elapsed)
            try:
                result = await self.take_next_step(intermediate_steps, query)
            except (AgentError, ParserError) as exc:
                display.halt(str(exc))
                raise
            elapsed = self._clock() - start
            iterations += 1

            if isinstance(result, AgentFinish):
                display.finished(result, iterations, elapsed)
                return result, intermediate_steps
            intermediate_steps.append(result)

        error = RuntimeExceededError(iterations, elapsed)
        display.halt(str(error))
        raise error
