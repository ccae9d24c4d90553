"""Multi-step form builder.

The package holds the form definition model and its store, the validator
derivation used by previews and fillers, and the services that keep builder
and filler contexts in sync through a shared durable store.
"""

from .exceptions import FormBuilderError, FormNotFound, PublicationError
from .models import FieldDefinition, FieldType, FieldValidation, FormDefinition, Step
from .store import FormDefinitionStore
from .validation import ValidationResult, build_form_validator, validate_answers

__all__ = [
    "FieldDefinition",
    "FieldType",
    "FieldValidation",
    "FormBuilderError",
    "FormDefinition",
    "FormDefinitionStore",
    "FormNotFound",
    "PublicationError",
    "Step",
    "ValidationResult",
    "build_form_validator",
    "validate_answers",
]
