# executor.py
# Text-generation capability consumed by the agent.
#
# An Executor takes an options bag and a prompt and returns an Output, which
# is either already complete or a stream of text deltas. The agent only needs
# `await output.to_immediate()` and `extract_last_body()`.

import logging
import os
from typing import Any, AsyncIterator, Protocol

from dotenv import load_dotenv
from openai import AsyncOpenAI

load_dotenv()

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "anthropic/claude-3.5-haiku"


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class ImmediateOutput:
    """Completed generation: zero or more completion bodies, oldest first."""

    def __init__(self, bodies: list[str]) -> None:
        self._bodies = list(bodies)

    @property
    def bodies(self) -> list[str]:
        return list(self._bodies)

    def extract_last_body(self) -> str | None:
        return self._bodies[-1] if self._bodies else None


class Output:
    """Result of Executor.execute — immediate, or a stream resolved on demand."""

    def __init__(
        self,
        immediate: ImmediateOutput | None = None,
        stream: AsyncIterator[str] | None = None,
    ) -> None:
        if (immediate is None) == (stream is None):
            raise ValueError("Output needs exactly one of an immediate result or a stream.")
        self._immediate = immediate
        self._stream = stream

    @classmethod
    def from_text(cls, *bodies: str) -> "Output":
        return cls(immediate=ImmediateOutput(list(bodies)))

    @classmethod
    def from_stream(cls, stream: AsyncIterator[str]) -> "Output":
        return cls(stream=stream)

    async def to_immediate(self) -> ImmediateOutput:
        if self._immediate is None:
            chunks = [chunk async for chunk in self._stream]
            text = "".join(chunks)
            self._immediate = ImmediateOutput([text] if text else [])
            self._stream = None
        return self._immediate


class Executor(Protocol):
    async def execute(self, options: dict[str, Any], prompt: str) -> Output: ...


# ---------------------------------------------------------------------------
# OpenAI-compatible executor
# ---------------------------------------------------------------------------


class OpenAIExecutor:
    """
    Executor backed by an OpenAI-compatible chat completions endpoint.

    Defaults to OpenRouter with the key from OPENROUTER_API_KEY. Entries of
    the options bag are passed through to the request; ``stream=True``
    produces a streamed Output.

    Example:
        executor = OpenAIExecutor("anthropic/claude-3.5-haiku")
        output = await executor.execute({}, "Say hi")
        text = (await output.to_immediate()).extract_last_body()
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        *,
        client: AsyncOpenAI | None = None,
        base_url: str = OPENROUTER_BASE_URL,
        api_key: str | None = None,
    ) -> None:
        self._model = model
        self._client = client or AsyncOpenAI(
            base_url=base_url,
            api_key=api_key or os.getenv("OPENROUTER_API_KEY"),
        )

    @property
    def model(self) -> str:
        return self._model

    async def execute(self, options: dict[str, Any], prompt: str) -> Output:
        request = {"model": self._model, **options}
        stream = bool(request.pop("stream", False))
        messages = [{"role": "user", "content": prompt}]
        logger.debug("Requesting completion from %s (stream=%s)", request["model"], stream)

        if stream:
            response = await self._client.chat.completions.create(
                messages=messages, stream=True, **request
            )
            return Output.from_stream(_deltas(response))

        response = await self._client.chat.completions.create(messages=messages, **request)
        bodies = [
            choice.message.content for choice in response.choices if choice.message.content
        ]
        return Output.from_text(*bodies)


async def _deltas(response: Any) -> AsyncIterator[str]:
    async for chunk in response:
        for choice in chunk.choices:
            if choice.delta and choice.delta.content:
                yield choice.delta.content
