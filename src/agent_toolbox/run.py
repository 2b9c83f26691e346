# run.py
# Entry point. Config and wiring only — no logic lives here.
#
# Swap the model string for any OpenRouter-supported model.
# https://openrouter.ai/models

import asyncio
import sys

from agent_toolbox import display
from agent_toolbox.agent import Agent, AgentError
from agent_toolbox.executor import OpenAIExecutor
from agent_toolbox.models import EarlyStoppingConfig
from agent_toolbox.parser import ParserError
from agent_toolbox.tools import default_toolbox

MODEL = "anthropic/claude-3.5-haiku"
EARLY_STOPPING = EarlyStoppingConfig(max_iterations=10, max_time_elapsed_seconds=30.0)

PROMPTS = [
    "Who was president of the United States when the Eiffel Tower was finished?",
    "What is the capital of the country that hosted the 2016 Summer Olympics?",
]


async def run_prompts(prompts: list[str]) -> int:
    agent = Agent(OpenAIExecutor(MODEL), default_toolbox(), EARLY_STOPPING)
    failures = 0
    for prompt in prompts:
        try:
            finish, steps = await agent.run(prompt)
        except (AgentError, ParserError):
            failures += 1
            continue
        display.transcript_tree(prompt, steps, finish)
    return failures


def main() -> None:
    prompts = sys.argv[1:] or PROMPTS
    failures = asyncio.run(run_prompts(prompts))
    sys.exit(1 if failures else 0)


if __name__ == "__main__":
    main()
