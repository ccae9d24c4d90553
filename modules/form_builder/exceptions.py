"""Custom exceptions for the form builder module."""
from __future__ import annotations


class FormBuilderError(RuntimeError):
    """Base exception for form builder operations."""


class PublicationError(FormBuilderError):
    """Raised when a form could not be published to the durable store."""


class FormNotFound(FormBuilderError):
    """Raised when a publication id does not resolve to a stored form."""

    def __init__(self, publication_id: str) -> None:
        super().__init__(f"Form '{publication_id}' not found")
        self.publication_id = publication_id


__all__ = ["FormBuilderError", "PublicationError", "FormNotFound"]
