"""Strict schemas for AI collaborator output.

Anything the model returns is validated against these before use; a
mismatch is treated exactly like a failed call.
"""

from __future__ import annotations

import json
from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from sitepilot.models.domain import STEP_ADAPTER
from sitepilot.types import Priority, StepType


class AiStep(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: StepType
    selector: str | None = None
    value: str | None = None
    description: str = ""
    expected: str | None = None

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, v: Any) -> Any:
        if isinstance(v, bool):
            return str(v).lower()
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @field_validator("selector", mode="before")
    @classmethod
    def _blank_selector_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def to_step(self) -> Any:
        return STEP_ADAPTER.validate_python(self.model_dump(mode="json"))


class AiTestCase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    description: str = ""
    priority: Priority = Priority.MEDIUM
    tags: list[str] = []
    steps: Annotated[list[AiStep], Field(min_length=1)]

    @field_validator("priority", mode="before")
    @classmethod
    def _upper_priority(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class BugAnalysis(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    summary: str = Field(min_length=1)
    root_cause: str = Field(validation_alias=AliasChoices("rootCause", "root_cause"))
    reproduction_steps: list[str] = Field(
        validation_alias=AliasChoices("reproductionSteps", "reproduction_steps")
    )


PAGE_STEPS_ADAPTER: TypeAdapter[list[list[AiStep]]] = TypeAdapter(
    Annotated[
        list[Annotated[list[AiStep], Field(min_length=1)]],
        Field(min_length=1),
    ]
)

SITE_CASES_ADAPTER: TypeAdapter[list[AiTestCase]] = TypeAdapter(
    Annotated[list[AiTestCase], Field(min_length=1)]
)


def extract_json(content: str) -> Any:
    """Parse JSON from an LLM response, stripping markdown code fences.

    Raises ``json.JSONDecodeError`` when the content is not JSON.
    """
    cleaned = content.strip()
    if cleaned.startswith("```"):
        lines = [line for line in cleaned.split("\n") if not line.strip().startswith("```")]
        cleaned = "\n".join(lines)
    return json.loads(cleaned)
