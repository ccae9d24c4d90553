from __future__ import annotations

from PySide6.QtCore import QObject, Signal


class FormBuilderSignals(QObject):
    """Qt signals for form builder events.

    One instance is created per execution context and handed to the store,
    the synchronizer and any view that wants to stay in sync.
    """

    # Emitted after a store action produced a new FormDefinition
    definitionChanged = Signal(object)
    # Emitted when the response list in scope changes; provides key and list
    responsesChanged = Signal(str, object)
    # Emitted when publishing a snapshot failed; provides publication id and message
    publicationFailed = Signal(str, str)
    # Emitted once when session persistence falls back to memory only
    storageDegraded = Signal(str)


__all__ = ["FormBuilderSignals"]
