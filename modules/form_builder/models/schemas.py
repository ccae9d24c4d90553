"""Pydantic models for payloads kept in the durable store."""

from __future__ import annotations

from typing import Any

from pydantic import TypeAdapter

from . import FormDefinition, Step, FrozenModel


class PublicationSnapshot(FrozenModel):
    """Read-only copy of a form published under a publication id."""

    title: str
    steps: tuple[Step, ...]
    current_step_index: int = 0

    @classmethod
    def from_definition(cls, definition: FormDefinition) -> "PublicationSnapshot":
        return cls(
            title=definition.title,
            steps=definition.steps,
            current_step_index=definition.current_step_index,
        )


class FormTemplate(FrozenModel):
    id: str
    title: str
    steps: tuple[Step, ...] = ()


ResponseList = TypeAdapter(list[dict[str, Any]])
TemplateList = TypeAdapter(list[FormTemplate])


def dump_json(model: FrozenModel) -> bytes:
    return model.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


__all__ = [
    "FormTemplate",
    "PublicationSnapshot",
    "ResponseList",
    "TemplateList",
    "dump_json",
]
