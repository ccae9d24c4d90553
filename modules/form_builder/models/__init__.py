"""Datamodels for the form builder.

The models are frozen pydantic models: a :class:`FormDefinition` is never
edited in place, the store builds a new one for every action and swaps it in.
Persisted JSON uses camelCase keys (``helpText``, ``minLength``,
``currentStepIndex``) while Python code uses the snake_case attribute names.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_FORM_TITLE = "Untitled Form"
DEFAULT_STEP_ID = "step-1"
DEFAULT_STEP_TITLE = "Step 1"


class FieldType(str, Enum):
    """Closed set of field kinds; values are the persisted type tags."""

    SHORT_TEXT = "text"
    LONG_TEXT = "textarea"
    SINGLE_SELECT = "dropdown"
    BOOLEAN = "checkbox"
    DATE = "date"
    EMAIL = "email"
    PHONE = "phone"


class FrozenModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class FieldValidation(FrozenModel):
    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=None, ge=0)
    pattern: Optional[str] = None

    @field_validator("pattern")
    @classmethod
    def compilable(cls, value: Optional[str]) -> Optional[str]:
        if value:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"Invalid pattern: {exc}") from exc
        return value or None

    @model_validator(mode="after")
    def ordered_bounds(self) -> "FieldValidation":
        if self.min_length is not None and self.max_length is not None and self.min_length > self.max_length:
            raise ValueError("minLength must not exceed maxLength")
        return self


class FieldDefinition(FrozenModel):
    """A single labelled input within a step."""

    id: str
    type: FieldType
    label: str
    placeholder: Optional[str] = None
    required: bool = False
    help_text: Optional[str] = None
    # Only meaningful for SINGLE_SELECT
    options: Optional[tuple[str, ...]] = None
    validation: Optional[FieldValidation] = None


class Step(FrozenModel):
    id: str
    title: str
    fields: tuple[FieldDefinition, ...] = ()

    @model_validator(mode="after")
    def unique_field_ids(self) -> "Step":
        seen: set[str] = set()
        for fld in self.fields:
            if fld.id in seen:
                raise ValueError(f"Duplicate field id '{fld.id}' in step '{self.id}'")
            seen.add(fld.id)
        return self


def _default_steps() -> tuple[Step, ...]:
    return (Step(id=DEFAULT_STEP_ID, title=DEFAULT_STEP_TITLE),)


class FormDefinition(FrozenModel):
    """The whole builder document.

    Serialised with ``by_alias=True`` this is the builder session snapshot:
    ``{title, steps, currentStepIndex, formId, isDarkMode}``.
    """

    title: str = DEFAULT_FORM_TITLE
    steps: tuple[Step, ...] = Field(default_factory=_default_steps, min_length=1)
    current_step_index: int = Field(default=0, ge=0)
    publication_id: Optional[str] = Field(default=None, alias="formId")
    is_dark_mode: bool = False

    @model_validator(mode="after")
    def consistent(self) -> "FormDefinition":
        if self.current_step_index >= len(self.steps):
            raise ValueError("currentStepIndex is out of range")
        ids = [step.id for step in self.steps]
        if len(set(ids)) != len(ids):
            raise ValueError("Step ids must be unique")
        return self


def default_definition(*, is_dark_mode: bool = False) -> FormDefinition:
    return FormDefinition(is_dark_mode=is_dark_mode)


__all__ = [
    "DEFAULT_FORM_TITLE",
    "DEFAULT_STEP_ID",
    "DEFAULT_STEP_TITLE",
    "FieldDefinition",
    "FieldType",
    "FieldValidation",
    "FormDefinition",
    "Step",
    "default_definition",
]
