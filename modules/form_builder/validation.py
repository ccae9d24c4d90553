"""Runtime validators derived from field definitions.

Each :class:`~modules.form_builder.models.FieldType` has one builder in
``_BUILDERS`` that returns the annotated value type for a field of that
kind.  :func:`build_form_validator` composes the per-field types into a
pydantic model with :func:`pydantic.create_model`.  Nothing is cached; the
same field list always yields an equivalent validator.

Rules applied on top of the per-type rules:

* a required field rejects ``None`` and blank strings (a boolean only needs
  to be present, ``False`` is an answer);
* an optional field accepts absence, ``None`` and ``""`` before any other
  rule runs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Annotated, Any, Callable, Iterable, Mapping, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    Field,
    StrictBool,
    StringConstraints,
    ValidationError,
    create_model,
)
from pydantic_core import PydanticCustomError

from .models import FieldDefinition, FieldType

REQUIRED_MESSAGE = "This field is required"

PHONE_RE = re.compile(r"^\+?[\d\s-]{10,}$")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _require_present(value: Any) -> Any:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        raise PydanticCustomError("required", REQUIRED_MESSAGE)
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and value.strip() == "":
        return None
    return value


def _matches(regex: re.Pattern[str], error_type: str, message: str) -> Callable[[str], str]:
    def check(value: str) -> str:
        if not regex.fullmatch(value):
            raise PydanticCustomError(error_type, message)
        return value

    return check


def _text_type(fld: FieldDefinition) -> Any:
    rules = fld.validation
    if rules is None:
        return str
    extra: list[Any] = [
        StringConstraints(min_length=rules.min_length, max_length=rules.max_length)
    ]
    if rules.pattern:
        extra.append(AfterValidator(_matches(re.compile(rules.pattern), "pattern", "Value does not match the expected format")))
    return Annotated[(str, *extra)]


def _email_type(fld: FieldDefinition) -> Any:
    return EmailStr


def _phone_type(fld: FieldDefinition) -> Any:
    return Annotated[str, AfterValidator(_matches(PHONE_RE, "phone", "Enter a valid phone number"))]


def _date_type(fld: FieldDefinition) -> Any:
    return Annotated[str, AfterValidator(_matches(DATE_RE, "date", "Use the YYYY-MM-DD format"))]


def _select_type(fld: FieldDefinition) -> Any:
    options = tuple(fld.options or ())
    if not options:
        return str

    def member(value: str) -> str:
        if value not in options:
            raise PydanticCustomError("option", "Please select a valid option")
        return value

    return Annotated[str, AfterValidator(member)]


def _boolean_type(fld: FieldDefinition) -> Any:
    return StrictBool


_BUILDERS: dict[FieldType, Callable[[FieldDefinition], Any]] = {
    FieldType.SHORT_TEXT: _text_type,
    FieldType.LONG_TEXT: _text_type,
    FieldType.EMAIL: _email_type,
    FieldType.PHONE: _phone_type,
    FieldType.SINGLE_SELECT: _select_type,
    FieldType.BOOLEAN: _boolean_type,
    FieldType.DATE: _date_type,
}

_unhandled = set(FieldType) - set(_BUILDERS)
if _unhandled:  # pragma: no cover - guards additions to FieldType
    raise RuntimeError(f"No validator builder for field types: {sorted(t.value for t in _unhandled)}")


def build_field_validator(fld: FieldDefinition) -> tuple[Any, Any]:
    """Return ``(annotation, default)`` for one field."""
    base = _BUILDERS[fld.type](fld)
    if fld.required:
        return Annotated[base, BeforeValidator(_require_present)], ...
    return Annotated[Optional[base], BeforeValidator(_blank_to_none)], None


def build_form_validator(fields: Iterable[FieldDefinition], *, name: str = "FormAnswers") -> type[BaseModel]:
    """Compose a model class validating an answer map keyed by field id."""
    definitions: dict[str, Any] = {}
    for position, fld in enumerate(fields):
        annotation, default = build_field_validator(fld)
        # Field ids are not identifiers; they are carried as aliases.
        definitions[f"field_{position}"] = (annotation, Field(default, alias=fld.id))
    return create_model(name, __config__=ConfigDict(extra="ignore"), **definitions)


@dataclass(slots=True)
class ValidationResult:
    values: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def validate_answers(fields: Iterable[FieldDefinition], answers: Mapping[str, Any]) -> ValidationResult:
    """Validate ``answers`` and collect one message per failing field id."""
    model = build_form_validator(list(fields))
    try:
        validated = model.model_validate(dict(answers))
    except ValidationError as exc:
        errors: dict[str, str] = {}
        for err in exc.errors():
            loc = err.get("loc") or ("",)
            field_id = str(loc[0])
            if field_id in errors:
                continue
            errors[field_id] = REQUIRED_MESSAGE if err["type"] == "missing" else err["msg"]
        return ValidationResult(errors=errors)
    return ValidationResult(values=validated.model_dump(by_alias=True, exclude_unset=True))


__all__ = [
    "REQUIRED_MESSAGE",
    "ValidationResult",
    "build_field_validator",
    "build_form_validator",
    "validate_answers",
]
