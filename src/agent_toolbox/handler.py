# handler.py
# Turns an async function with typed, extractable arguments into a uniform
# text-in / text-out service.
#
#   @handler(State(), Yaml(MyInput))
#   async def my_tool(state, payload) -> MyOutput: ...
#
#   service = my_tool.with_state(state, name="my_tool", description="…")
#   text = await service.call("id: 1\nname: abc")
#
# Every invocation yields an Ok or an Err. Infallible handlers declare no
# recoverable exception types. A service never surfaces an Err, an
# ExtractionError or an undeclared exception to its caller; all of them are
# folded into the returned text.

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar, Union

from agent_toolbox.description import EMPTY_FORMAT, Format, ToolDescription, describe
from agent_toolbox.extract import ExtractionError, Extractor

logger = logging.getLogger(__name__)

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)

MAX_ARITY = 6


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result of a handler or tool invocation."""

    value: T

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed result; `error` is the exception that ended the computation."""

    error: E

    def __str__(self) -> str:
        return str(self.error)


Outcome = Union[Ok[T], Err[E]]


def _as_outcome(value: Any) -> Outcome:
    if isinstance(value, (Ok, Err)):
        return value
    return Ok(value)


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------


class Handler:
    """
    An async function plus the ordered extractors that feed its arguments.

    `returns` is the describable result type; when omitted it is read from the
    function's return annotation. `raises` lists the exception types treated
    as recoverable failures: they become Err outcomes a pipe step can see.
    Anything else propagates out of `invoke` and `run`, and is logged and
    turned into text by `call`.
    """

    def __init__(
        self,
        fn: Callable[..., Awaitable[Any]],
        extractors: Sequence[Extractor] = (),
        *,
        returns: Any = None,
        raises: tuple[type[BaseException], ...] = (Exception,),
    ) -> None:
        if not inspect.iscoroutinefunction(fn):
            raise TypeError(f"Handler function {_fn_name(fn)} must be declared with 'async def'.")
        if len(extractors) > MAX_ARITY:
            raise ValueError(
                f"Handler {_fn_name(fn)} takes {len(extractors)} arguments; "
                f"at most {MAX_ARITY} are supported."
            )
        try:
            inspect.signature(fn).bind(*extractors)
        except TypeError as exc:
            raise ValueError(
                f"Handler {_fn_name(fn)} does not accept {len(extractors)} positional argument(s)."
            ) from exc

        self.fn = fn
        self.extractors = tuple(extractors)
        self.returns = returns if returns is not None else _return_annotation(fn)
        self.raises = tuple(raises)

    @property
    def name(self) -> str:
        return _fn_name(self.fn)

    async def __call__(self, *args: Any) -> Any:
        return await self.fn(*args)

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    def extract(self, request: str, state: Any) -> list[Any]:
        """Run every extractor against the same request and state, in order."""
        return [extractor.extract(request, state) for extractor in self.extractors]

    async def invoke(self, *args: Any) -> Outcome:
        """Call the wrapped function on already-extracted arguments."""
        try:
            result = await self.fn(*args)
        except self.raises as exc:
            return Err(exc)
        return _as_outcome(result)

    async def run(self, request: str, state: Any) -> Outcome:
        args = self.extract(request, state)
        return await self.invoke(*args)

    async def call(self, request: str, state: Any) -> str:
        """Extract, invoke and render. Always returns text."""
        try:
            outcome = await self.run(request, state)
        except ExtractionError as exc:
            logger.info("Extraction failed for %s: %s", self.name, exc)
            return str(exc)
        except Exception as exc:
            logger.exception("Handler %s raised an undeclared error", self.name)
            return str(exc) or type(exc).__name__

        if isinstance(outcome, Err):
            logger.warning("Handler %s failed: %s", self.name, outcome.error)
        return str(outcome)

    # ------------------------------------------------------------------
    # Description
    # ------------------------------------------------------------------

    def input_format(self) -> Format:
        if not self.extractors:
            return EMPTY_FORMAT
        return self.extractors[-1].describe()

    def output_format(self) -> Format:
        return describe(self.returns)

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def pipe(
        self,
        secondary: Callable[[Outcome], Awaitable[Any]],
        *,
        returns: Any = None,
        raises: tuple[type[BaseException], ...] = (Exception,),
    ) -> "Handler":
        """
        Feed this handler's full outcome into `secondary`.

        `secondary` receives Ok(value) when this handler succeeded and
        Err(error) when it failed, and produces the final describable result.
        """
        if not inspect.iscoroutinefunction(secondary):
            raise TypeError(f"Pipe target {_fn_name(secondary)} must be declared with 'async def'.")
        primary = self

        async def piped(*args: Any) -> Any:
            outcome = await primary.invoke(*args)
            return await secondary(outcome)

        piped.__name__ = f"{primary.name}|{_fn_name(secondary)}"
        return Handler(
            piped,
            self.extractors,
            returns=returns if returns is not None else _return_annotation(secondary),
            raises=raises,
        )

    def with_state(
        self,
        state: Any = None,
        *,
        name: str | None = None,
        description: str = "",
        description_context: str = "",
    ) -> "HandlerService":
        """
        Bind shared state and build the tool description.

        Raises NotDescribableError if the last argument or the result type has
        no registered Format.
        """
        tool_description = ToolDescription(
            name=name or self.name,
            description=description or inspect.getdoc(self.fn) or "",
            description_context=description_context,
            input_format=self.input_format(),
            output_format=self.output_format(),
        )
        return HandlerService(self, state, tool_description)

    def __repr__(self) -> str:
        args = ", ".join(repr(e) for e in self.extractors)
        return f"Handler({self.name}({args}))"


def handler(
    *extractors: Extractor,
    returns: Any = None,
    raises: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[Callable[..., Awaitable[Any]]], Handler]:
    """Decorator form of Handler."""

    def decorate(fn: Callable[..., Awaitable[Any]]) -> Handler:
        return Handler(fn, extractors, returns=returns, raises=raises)

    return decorate


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class HandlerService:
    """A Handler bound to its state: the object the Toolbox stores."""

    def __init__(self, handler: Handler, state: Any, description: ToolDescription) -> None:
        self._handler = handler
        self._state = state
        self._description = description

    @property
    def name(self) -> str:
        return self._description.name

    @property
    def description(self) -> ToolDescription:
        return self._description

    @property
    def state(self) -> Any:
        return self._state

    async def call(self, request: str) -> str:
        return await self._handler.call(request, self._state)

    def __repr__(self) -> str:
        return f"HandlerService({self.name!r})"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fn_name(fn: Any) -> str:
    return getattr(fn, "__name__", type(fn).__name__)


def _return_annotation(fn: Callable[..., Any]) -> Any:
    annotation = inspect.signature(fn).return_annotation
    if annotation is inspect.Signature.empty:
        return None
    if isinstance(annotation, str):
        try:
            annotation = inspect.get_annotations(fn, eval_str=True).get("return")
        except NameError:
            return None
    return annotation
