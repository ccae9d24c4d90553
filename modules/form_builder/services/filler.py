"""Filling a published form in its own execution context."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from utils.durable_store import KeyValueStore

from ..exceptions import FormBuilderError, FormNotFound
from ..models import FieldType, Step
from ..models.schemas import PublicationSnapshot
from ..validation import ValidationResult, validate_answers
from .sync import append_response, load_publication, response_key

logger = logging.getLogger(__name__)


class FillerStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    NOT_FOUND = "not_found"


class FillerSession:
    """Step-by-step filling of the form published under ``publication_id``.

    The session starts in ``LOADING`` and moves to ``READY`` or
    ``NOT_FOUND`` once :meth:`load` has read the store.  Validation problems
    are kept in :attr:`errors` keyed by field id and never raised.
    """

    def __init__(self, kv: KeyValueStore, publication_id: str) -> None:
        self.kv = kv
        self.publication_id = publication_id
        self.status = FillerStatus.LOADING
        self.form: Optional[PublicationSnapshot] = None
        self.step_index = 0
        self.answers: dict[str, Any] = {}
        self.errors: dict[str, str] = {}

    def load(self) -> FillerStatus:
        self.form = load_publication(self.kv, self.publication_id)
        if self.form is None:
            logger.info("[filler] form %s not found", self.publication_id)
            self.status = FillerStatus.NOT_FOUND
        else:
            self.status = FillerStatus.READY
            self.step_index = 0
            # An untouched checkbox is an unchecked one.
            for step in self.form.steps:
                for fld in step.fields:
                    if fld.type is FieldType.BOOLEAN:
                        self.answers.setdefault(fld.id, False)
        return self.status

    def _ready_form(self) -> PublicationSnapshot:
        if self.status is FillerStatus.NOT_FOUND:
            raise FormNotFound(self.publication_id)
        if self.form is None:
            raise FormBuilderError("Form is still loading")
        return self.form

    @property
    def current_step(self) -> Step:
        return self._ready_form().steps[self.step_index]

    @property
    def is_last_step(self) -> bool:
        return self.step_index == len(self._ready_form().steps) - 1

    def set_answer(self, field_id: str, value: Any) -> None:
        self.answers[field_id] = value
        self.errors.pop(field_id, None)

    def validate_step(self, index: Optional[int] = None) -> ValidationResult:
        step = self._ready_form().steps[self.step_index if index is None else index]
        ids = {fld.id for fld in step.fields}
        return validate_answers(step.fields, {k: v for k, v in self.answers.items() if k in ids})

    def next_step(self) -> bool:
        """Advance when the current step validates; keep its errors otherwise."""
        result = self.validate_step()
        self.errors = dict(result.errors)
        if not result.ok or self.is_last_step:
            return False
        self.step_index += 1
        return True

    def previous_step(self) -> bool:
        self._ready_form()
        if self.step_index == 0:
            return False
        self.step_index -= 1
        return True

    def submit(self) -> Optional[dict[str, Any]]:
        """Validate every step and record the answers.

        Returns the stored answer map, or ``None`` after moving to the first
        step with errors.
        """
        form = self._ready_form()
        collected: dict[str, Any] = {}
        for index in range(len(form.steps)):
            result = self.validate_step(index)
            if not result.ok:
                self.step_index = index
                self.errors = dict(result.errors)
                return None
            collected.update(result.values)
        self.errors = {}
        append_response(self.kv, response_key(self.publication_id), collected)
        return collected


__all__ = ["FillerSession", "FillerStatus"]
