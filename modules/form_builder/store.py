"""In-memory owner of the form definition being built.

:class:`FormDefinitionStore` is the only way to change a
:class:`~modules.form_builder.models.FormDefinition`.  Every action builds a
complete new definition and swaps it in before ``definitionChanged`` is
emitted, so observers never see a half-applied change.

Actions that reference an unknown step or field, try to remove the last
step, or pass indices outside the field list are silent no-ops.  Callers
always derive ids and indices from the current state, so such calls are
contract violations by the caller and are only logged at DEBUG level.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping, Optional

from utils.app_signals import FormBuilderSignals

from .models import FieldDefinition, FormDefinition, Step, default_definition

logger = logging.getLogger(__name__)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def _attribute_names(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Map camelCase keys from UI payloads onto FieldDefinition attributes."""
    by_alias = {
        (info.alias or name): name for name, info in FieldDefinition.model_fields.items()
    }
    return {by_alias.get(key, key): value for key, value in changes.items()}


class FormDefinitionStore:
    """Action surface over a single :class:`FormDefinition`."""

    def __init__(
        self,
        initial: FormDefinition | None = None,
        *,
        signals: FormBuilderSignals | None = None,
    ) -> None:
        self._state: FormDefinition = initial or default_definition()
        self.signals = signals or FormBuilderSignals()

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------
    @property
    def state(self) -> FormDefinition:
        return self._state

    def current_step(self) -> Step:
        return self._state.steps[self._state.current_step_index]

    def find_step(self, step_id: str) -> Optional[Step]:
        index = self._step_index(step_id)
        return None if index is None else self._state.steps[index]

    def snapshot(self) -> dict[str, Any]:
        """Return the session snapshot as JSON-compatible data."""
        return self._state.model_dump(mode="json", by_alias=True, exclude_none=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _step_index(self, step_id: str) -> Optional[int]:
        for index, step in enumerate(self._state.steps):
            if step.id == step_id:
                return index
        return None

    def _commit(self, new_state: FormDefinition, action: str) -> None:
        self._state = new_state
        logger.debug("[form-store] %s", action)
        self.signals.definitionChanged.emit(new_state)

    def _with_fields(self, step_id: str, action: str, fields_fn) -> bool:
        index = self._step_index(step_id)
        if index is None:
            logger.debug("[form-store] %s ignored: unknown step %s", action, step_id)
            return False
        step = self._state.steps[index]
        new_fields = fields_fn(list(step.fields))
        if new_fields is None:
            return False
        steps = list(self._state.steps)
        steps[index] = step.model_copy(update={"fields": tuple(new_fields)})
        self._commit(self._state.model_copy(update={"steps": tuple(steps)}), action)
        return True

    # ------------------------------------------------------------------
    # Field actions
    # ------------------------------------------------------------------
    def add_field(self, step_id: str, field: FieldDefinition | Mapping[str, Any]) -> Optional[str]:
        """Append ``field`` to the step with a freshly generated id.

        Any id carried by ``field`` is replaced.  Returns the new id, or
        ``None`` when the step does not exist.
        """
        if self._step_index(step_id) is None:
            logger.debug("[form-store] add_field ignored: unknown step %s", step_id)
            return None
        field_id = _new_id("field")
        if isinstance(field, FieldDefinition):
            new_field = field.model_copy(update={"id": field_id})
        else:
            data = _attribute_names(field)
            data["id"] = field_id
            new_field = FieldDefinition.model_validate(data)
        self._with_fields(step_id, f"add_field {field_id}", lambda fields: [*fields, new_field])
        return field_id

    def update_field(
        self,
        step_id: str,
        field_id: str,
        changes: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> bool:
        """Merge ``changes`` into a field, keeping its id and position.

        The merged field is validated again, so an invalid merge raises
        :class:`pydantic.ValidationError` and leaves the state untouched.
        """
        updates = _attribute_names({**(changes or {}), **kwargs})
        updates.pop("id", None)

        def apply(fields: list[FieldDefinition]):
            for index, current in enumerate(fields):
                if current.id == field_id:
                    merged = {**current.model_dump(), **updates}
                    fields[index] = FieldDefinition.model_validate(merged)
                    return fields
            logger.debug("[form-store] update_field ignored: unknown field %s", field_id)
            return None

        return self._with_fields(step_id, f"update_field {field_id}", apply)

    def remove_field(self, step_id: str, field_id: str) -> bool:
        def apply(fields: list[FieldDefinition]):
            remaining = [f for f in fields if f.id != field_id]
            if len(remaining) == len(fields):
                logger.debug("[form-store] remove_field ignored: unknown field %s", field_id)
                return None
            return remaining

        return self._with_fields(step_id, f"remove_field {field_id}", apply)

    def reorder_fields(self, step_id: str, from_index: int, to_index: int) -> bool:
        """Move the field at ``from_index`` to ``to_index`` within one step."""

        def apply(fields: list[FieldDefinition]):
            count = len(fields)
            if not (0 <= from_index < count and 0 <= to_index < count):
                logger.debug(
                    "[form-store] reorder_fields ignored: %s -> %s of %s", from_index, to_index, count
                )
                return None
            if from_index == to_index:
                return None
            moved = fields.pop(from_index)
            fields.insert(to_index, moved)
            return fields

        return self._with_fields(step_id, f"reorder_fields {from_index}->{to_index}", apply)

    # ------------------------------------------------------------------
    # Step actions
    # ------------------------------------------------------------------
    def add_step(self, title: str) -> str:
        step_id = _new_id("step")
        steps = (*self._state.steps, Step(id=step_id, title=title))
        self._commit(self._state.model_copy(update={"steps": steps}), f"add_step {step_id}")
        return step_id

    def remove_step(self, step_id: str) -> bool:
        index = self._step_index(step_id)
        if index is None:
            logger.debug("[form-store] remove_step ignored: unknown step %s", step_id)
            return False
        if len(self._state.steps) <= 1:
            logger.debug("[form-store] remove_step ignored: %s is the only step", step_id)
            return False
        steps = tuple(s for s in self._state.steps if s.id != step_id)
        current = min(self._state.current_step_index, len(steps) - 1)
        self._commit(
            self._state.model_copy(update={"steps": steps, "current_step_index": current}),
            f"remove_step {step_id}",
        )
        return True

    def rename_step(self, step_id: str, title: str) -> bool:
        index = self._step_index(step_id)
        if index is None:
            logger.debug("[form-store] rename_step ignored: unknown step %s", step_id)
            return False
        steps = list(self._state.steps)
        steps[index] = steps[index].model_copy(update={"title": title})
        self._commit(self._state.model_copy(update={"steps": tuple(steps)}), f"rename_step {step_id}")
        return True

    def set_current_step(self, index: int) -> None:
        """Select the active step; out-of-range values are clamped."""
        clamped = max(0, min(int(index), len(self._state.steps) - 1))
        if clamped != index:
            logger.debug("[form-store] set_current_step clamped %s to %s", index, clamped)
        if clamped == self._state.current_step_index:
            return
        self._commit(
            self._state.model_copy(update={"current_step_index": clamped}),
            f"set_current_step {clamped}",
        )

    # ------------------------------------------------------------------
    # Form actions
    # ------------------------------------------------------------------
    def set_form_title(self, title: str) -> None:
        self._commit(self._state.model_copy(update={"title": title}), "set_form_title")

    def set_form_id(self, publication_id: str) -> None:
        self._commit(
            self._state.model_copy(update={"publication_id": publication_id}),
            f"set_form_id {publication_id}",
        )

    def toggle_dark_mode(self) -> None:
        self._commit(
            self._state.model_copy(update={"is_dark_mode": not self._state.is_dark_mode}),
            "toggle_dark_mode",
        )

    def reset_form(self) -> None:
        """Replace the definition with the one-step default.

        The dark mode preference survives the reset.
        """
        self._commit(default_definition(is_dark_mode=self._state.is_dark_mode), "reset_form")

    def hydrate(self, definition: FormDefinition) -> None:
        """Adopt a previously persisted session definition."""
        self._commit(definition, "hydrate")


__all__ = ["FormDefinitionStore"]
