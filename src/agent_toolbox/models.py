# models.py
# Data contracts for the agent loop.
# No business logic lives here — pure schema and validation.

from typing import Union

from pydantic import BaseModel, ConfigDict, Field


class AgentAction(BaseModel):
    """Parsed intent to invoke a named tool."""

    model_config = ConfigDict(frozen=True)

    tool: str = Field(..., description="Tool name — looked up in the Toolbox.")
    tool_input: str = Field(..., description="Raw tool input, passed to the tool verbatim.")
    log: str = Field(..., description="Model text that produced this action.")


class AgentFinish(BaseModel):
    """Terminal decision of a planning round."""

    model_config = ConfigDict(frozen=True)

    return_values: dict[str, str] = Field(default_factory=dict)
    log: str = Field(default="", description="Full model text of the final round.")

    @property
    def output(self) -> str | None:
        return self.return_values.get("output")


AgentDecision = Union[AgentAction, AgentFinish]


class IntermediateStep(BaseModel):
    """One completed round: the action taken and what the tool returned."""

    model_config = ConfigDict(frozen=True)

    action: AgentAction
    observation: str = Field(default="", description="Text returned by the tool.")


class EarlyStoppingConfig(BaseModel):
    """Bounds on an agent run. An unset bound never stops the loop."""

    max_iterations: int | None = Field(default=None, ge=0)
    max_time_elapsed_seconds: float | None = Field(default=None, ge=0)
