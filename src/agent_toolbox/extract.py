# extract.py
# Argument extraction: one raw request string + shared state → one typed value.
#
# Every extractor of a handler sees the same request text and the same state.
# Failures are ExtractionErrors; the handler layer turns their text into the
# tool's output so the model can read what went wrong.

from typing import Any, Generic, TypeVar

import yaml
from pydantic import BaseModel, TypeAdapter, ValidationError

from agent_toolbox.description import Format, NotDescribableError, describe

T = TypeVar("T")


class ExtractionError(Exception):
    """Raised when a handler argument cannot be derived from the request."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class Extractor(Generic[T]):
    """Produces one handler argument from (request text, state)."""

    def extract(self, request: str, state: Any) -> T:
        raise NotImplementedError

    def describe(self) -> Format:
        raise NotDescribableError(f"{type(self).__name__} has no input shape to describe.")


class State(Extractor[Any]):
    """Passes the bound state through. The request text is ignored."""

    def extract(self, request: str, state: Any) -> Any:
        return state

    def __repr__(self) -> str:
        return "State()"


class Yaml(Extractor[T]):
    """
    Deserializes the whole request text as YAML into `model`.

    Pydantic models are validated with ``model_validate``; any other type goes
    through a ``TypeAdapter``. The input Format forwards to the inner type.
    """

    def __init__(self, model: type[T]) -> None:
        self.model = model
        if isinstance(model, type) and issubclass(model, BaseModel):
            self._adapter = None
        else:
            self._adapter = TypeAdapter(model)

    def extract(self, request: str, state: Any) -> T:
        try:
            data = yaml.safe_load(request)
        except yaml.YAMLError as exc:
            raise ExtractionError(f"Input is not valid YAML: {exc}", exc) from exc

        try:
            if self._adapter is None:
                return self.model.model_validate(data)
            return self._adapter.validate_python(data)
        except ValidationError as exc:
            raise ExtractionError(
                f"Input does not match {_type_name(self.model)}: {exc}", exc
            ) from exc

    def describe(self) -> Format:
        return describe(self.model)

    def __repr__(self) -> str:
        return f"Yaml({_type_name(self.model)})"


class Text(Extractor[T]):
    """
    Places the trimmed request text into a single field of `model`.

    For tools fed free text, such as the self-ask follow-up question.
    """

    def __init__(self, model: type[T], field: str) -> None:
        if field not in model.model_fields:
            raise ValueError(f"{_type_name(model)} has no field {field!r}.")
        self.model = model
        self.field = field

    def extract(self, request: str, state: Any) -> T:
        text = request.strip()
        if not text:
            raise ExtractionError(f"Input for {self.field!r} is empty.")
        try:
            return self.model.model_validate({self.field: text})
        except ValidationError as exc:
            raise ExtractionError(
                f"Input does not match {_type_name(self.model)}: {exc}", exc
            ) from exc

    def describe(self) -> Format:
        return describe(self.model)

    def __repr__(self) -> str:
        return f"Text({_type_name(self.model)}.{self.field})"


def _type_name(tp: Any) -> str:
    return getattr(tp, "__qualname__", repr(tp))
