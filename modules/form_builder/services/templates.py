"""Predefined and user-saved form templates.

Loading a template replays it through the store's regular actions
(``reset_form``, ``set_form_title``, ``add_step``, ``add_field``,
``remove_step``), so template content gets the same id generation and
checks as a form assembled by hand.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from utils.durable_store import KeyValueStore, StorageUnavailable

from ..models.schemas import FormTemplate, TemplateList
from ..store import FormDefinitionStore

logger = logging.getLogger(__name__)

TEMPLATES_KEY = "form-templates"

_PREDEFINED: list[dict[str, Any]] = [
    {
        "id": "contact",
        "title": "Contact Form",
        "steps": [
            {
                "id": "step-1",
                "title": "Contact Information",
                "fields": [
                    {"id": "name", "type": "text", "label": "Full Name", "required": True,
                     "placeholder": "Enter your full name"},
                    {"id": "email", "type": "email", "label": "Email Address", "required": True,
                     "placeholder": "Enter your email address"},
                    {"id": "phone", "type": "phone", "label": "Phone Number", "required": False,
                     "placeholder": "Enter your phone number"},
                    {"id": "message", "type": "textarea", "label": "Message", "required": True,
                     "placeholder": "Enter your message",
                     "validation": {"minLength": 10, "maxLength": 500}},
                ],
            }
        ],
    },
    {
        "id": "registration",
        "title": "Registration Form",
        "steps": [
            {
                "id": "step-1",
                "title": "Personal Information",
                "fields": [
                    {"id": "firstName", "type": "text", "label": "First Name", "required": True,
                     "placeholder": "Enter your first name"},
                    {"id": "lastName", "type": "text", "label": "Last Name", "required": True,
                     "placeholder": "Enter your last name"},
                    {"id": "dob", "type": "date", "label": "Date of Birth", "required": True},
                    {"id": "gender", "type": "dropdown", "label": "Gender", "required": True,
                     "options": ["Male", "Female", "Other", "Prefer not to say"]},
                ],
            },
            {
                "id": "step-2",
                "title": "Account Information",
                "fields": [
                    {"id": "email", "type": "email", "label": "Email Address", "required": True,
                     "placeholder": "Enter your email address"},
                    {"id": "password", "type": "text", "label": "Password", "required": True,
                     "placeholder": "Enter your password", "validation": {"minLength": 8}},
                    {"id": "terms", "type": "checkbox", "label": "I agree to the terms and conditions",
                     "required": True},
                ],
            },
        ],
    },
]

PREDEFINED_TEMPLATES: tuple[FormTemplate, ...] = tuple(FormTemplate.model_validate(t) for t in _PREDEFINED)


def load_template(store: FormDefinitionStore, template: FormTemplate | Mapping[str, Any]) -> None:
    """Replace the store's form with the content of ``template``."""
    if not isinstance(template, FormTemplate):
        template = FormTemplate.model_validate(template)

    store.reset_form()
    placeholder_id = store.state.steps[0].id
    store.set_form_title(template.title)
    for step in template.steps:
        step_id = store.add_step(step.title)
        for fld in step.fields:
            store.add_field(step_id, fld)
    if template.steps:
        store.remove_step(placeholder_id)
    logger.info("[templates] loaded '%s' (%d steps)", template.title, len(template.steps))


class TemplateLibrary:
    """Templates persisted as one list under :data:`TEMPLATES_KEY`."""

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    def saved_templates(self) -> list[FormTemplate]:
        try:
            raw = self.kv.get(TEMPLATES_KEY)
        except StorageUnavailable as e:
            logger.warning("[templates] saved templates unavailable: %s", e)
            return []
        if raw is None:
            return []
        try:
            return TemplateList.validate_json(raw)
        except ValidationError as e:
            logger.warning("[templates] ignoring unreadable template list: %s", e)
            return []

    def all_templates(self) -> list[FormTemplate]:
        return [*PREDEFINED_TEMPLATES, *self.saved_templates()]

    def get(self, template_id: str) -> Optional[FormTemplate]:
        for template in self.all_templates():
            if template.id == template_id:
                return template
        return None

    def _write(self, templates: list[FormTemplate]) -> None:
        self.kv.set(TEMPLATES_KEY, TemplateList.dump_json(templates, by_alias=True, exclude_none=True))

    def save_current(self, store: FormDefinitionStore) -> FormTemplate:
        """Append the store's title and steps as a new saved template."""
        state = store.state
        template = FormTemplate(id=f"template-{uuid.uuid4().hex}", title=state.title, steps=state.steps)
        self._write([*self.saved_templates(), template])
        logger.info("[templates] saved '%s' as %s", template.title, template.id)
        return template

    def delete_template(self, template_id: str) -> bool:
        templates = self.saved_templates()
        remaining = [t for t in templates if t.id != template_id]
        if len(remaining) == len(templates):
            return False
        self._write(remaining)
        return True


__all__ = [
    "PREDEFINED_TEMPLATES",
    "TEMPLATES_KEY",
    "TemplateLibrary",
    "load_template",
]
