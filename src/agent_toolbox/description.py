# description.py
# Self-describing shapes of the values exchanged with the model.
#
# A Format is a key → purpose mapping. Every describable type has exactly one,
# recorded once in a process-wide registration map and looked up by type.
# Pure metadata — nothing here performs I/O.

from typing import Any, Iterable

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator


class NotDescribableError(TypeError):
    """Raised when a type has no registered Format."""


# ---------------------------------------------------------------------------
# Format
# ---------------------------------------------------------------------------


class FormatPart(BaseModel):
    """A single named field and the natural-language intent behind it."""

    model_config = ConfigDict(frozen=True)

    key: str
    purpose: str


class Format(BaseModel):
    """Ordered collection of FormatParts with unique keys."""

    model_config = ConfigDict(frozen=True)

    parts: tuple[FormatPart, ...] = ()

    def __init__(self, parts: Iterable[FormatPart | tuple[str, str]] = (), **data: Any) -> None:
        normalized = tuple(
            p if isinstance(p, FormatPart) else FormatPart(key=p[0], purpose=p[1]) for p in parts
        )
        super().__init__(parts=normalized, **data)

    @model_validator(mode="after")
    def _unique_keys(self) -> "Format":
        seen: set[str] = set()
        for part in self.parts:
            if part.key in seen:
                raise ValueError(f"Duplicate format key {part.key!r}.")
            seen.add(part.key)
        return self

    @classmethod
    def from_model(cls, model: type[BaseModel]) -> "Format":
        """Build a Format from a pydantic model's fields, in declaration order.

        A field's purpose is its ``description``; undocumented fields fall back
        to their own name.
        """
        return cls(
            (field.alias or name, field.description or name)
            for name, field in model.model_fields.items()
        )

    def keys(self) -> list[str]:
        return [part.key for part in self.parts]

    def to_mapping(self) -> dict[str, str]:
        return {part.key: part.purpose for part in self.parts}

    def to_yaml(self) -> str:
        if not self.parts:
            return "{}\n"
        return yaml.safe_dump(self.to_mapping(), sort_keys=False, allow_unicode=True)

    def __len__(self) -> int:
        return len(self.parts)


EMPTY_FORMAT = Format()


# ---------------------------------------------------------------------------
# Registration map
# ---------------------------------------------------------------------------

_FORMATS: dict[type, Format] = {}


def register_format(tp: type, fmt: Format | Iterable[FormatPart | tuple[str, str]]) -> Format:
    """
    Record the Format of `tp`.

    Re-registering an identical Format is a no-op; registering a different one
    for a type that already has a Format raises ValueError.
    """
    if not isinstance(fmt, Format):
        fmt = Format(fmt)
    existing = _FORMATS.get(tp)
    if existing is not None and existing != fmt:
        raise ValueError(f"{tp.__qualname__} already has a registered Format.")
    _FORMATS[tp] = fmt
    return fmt


def describe(tp: Any) -> Format:
    """Return the registered Format of `tp`, or raise NotDescribableError."""
    try:
        return _FORMATS[tp]
    except (KeyError, TypeError):
        name = getattr(tp, "__qualname__", repr(tp))
        raise NotDescribableError(f"{name} has no registered Format.") from None


def is_describable(tp: Any) -> bool:
    try:
        return tp in _FORMATS
    except TypeError:
        return False


# ---------------------------------------------------------------------------
# ToolModel
# ---------------------------------------------------------------------------


class ToolModel(BaseModel):
    """
    Base class for tool inputs and outputs.

    Each subclass registers its Format once, when the class is created, from
    the ``description`` of its fields. Instances render as YAML, which is the
    text the model reads back as an observation.
    """

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        register_format(cls, Format.from_model(cls))

    def __str__(self) -> str:
        return yaml.safe_dump(
            self.model_dump(mode="json", by_alias=True), sort_keys=False, allow_unicode=True
        )


# ---------------------------------------------------------------------------
# ToolDescription
# ---------------------------------------------------------------------------


class ToolDescription(BaseModel):
    """Name, usage text and input/output shapes of one registered tool."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Name the model uses to invoke the tool.")
    description: str = Field(default="", description="What the tool does.")
    description_context: str = Field(default="", description="When the tool is useful.")
    input_format: Format = Field(default=EMPTY_FORMAT)
    output_format: Format = Field(default=EMPTY_FORMAT)

    def to_mapping(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "description_context": self.description_context,
            "input_format": self.input_format.to_mapping(),
            "output_format": self.output_format.to_mapping(),
        }
