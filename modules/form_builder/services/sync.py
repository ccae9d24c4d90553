"""Keeps a builder session in step with the durable store.

:class:`FormSynchronizer` listens to ``definitionChanged`` and

* writes the session snapshot under :data:`SESSION_KEY` (falling back to a
  memory-only session if storage is unavailable),
* rewrites the publication snapshot while the form has a publication id,
* keeps the response list for the form in scope current, including
  responses written by other contexts.

Response recording is a read-modify-write on a single key without any
cross-context lock; two contexts appending at the same moment can lose one
of the entries.
"""

from __future__ import annotations

import logging
import re
import uuid
from typing import Any, Mapping, Optional

from pydantic import ValidationError
from PySide6.QtCore import QObject, QTimer

from utils.app_settings import FormBuilderSettings, load_settings
from utils.durable_store import KeyValueStore, StorageUnavailable

from ..exceptions import PublicationError
from ..models import FormDefinition
from ..models.schemas import PublicationSnapshot, ResponseList, dump_json
from ..store import FormDefinitionStore

logger = logging.getLogger(__name__)

SESSION_KEY = "form-builder-storage"
RESPONSES_KEY = "form-responses"

# Shape of the ids handed out by FormSynchronizer.share()
PUBLICATION_ID_RE = re.compile(r"^form-[0-9a-f]{32}$")


def new_publication_id() -> str:
    return f"form-{uuid.uuid4().hex}"


def is_publication_id(value: str) -> bool:
    return bool(PUBLICATION_ID_RE.fullmatch(value or ""))


def response_key(publication_id: Optional[str]) -> str:
    return f"{RESPONSES_KEY}-{publication_id}" if publication_id else RESPONSES_KEY


def load_publication(kv: KeyValueStore, publication_id: str) -> Optional[PublicationSnapshot]:
    """Return the published snapshot, or ``None`` if nothing usable is stored."""
    if not is_publication_id(publication_id):
        logger.debug("[form-sync] %r is not a publication id", publication_id)
        return None
    raw = kv.get(publication_id)
    if raw is None:
        return None
    try:
        return PublicationSnapshot.model_validate_json(raw)
    except ValidationError as e:
        logger.warning("[form-sync] unreadable publication %s: %s", publication_id, e)
        return None


def read_responses(kv: KeyValueStore, key: str) -> list[dict[str, Any]]:
    raw = kv.get(key)
    if raw is None:
        return []
    return ResponseList.validate_json(raw)


def append_response(kv: KeyValueStore, key: str, answers: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Append one answer map to the list under ``key`` and return the new list."""
    updated = [*read_responses(kv, key), dict(answers)]
    kv.set(key, ResponseList.dump_json(updated))
    logger.info("[form-sync] recorded response #%d under %s", len(updated), key)
    return updated


class FormSynchronizer:
    """Bridges a :class:`FormDefinitionStore` and a durable store."""

    def __init__(
        self,
        store: FormDefinitionStore,
        kv: KeyValueStore,
        *,
        settings: FormBuilderSettings | None = None,
    ) -> None:
        self.store = store
        self.kv = kv
        self.signals = store.signals
        self.settings = settings or load_settings()
        self.is_durable = True
        self._responses: list[dict[str, Any]] = []
        self._responses_key = response_key(store.state.publication_id)
        self.signals.definitionChanged.connect(self._on_definition_changed)
        kv.on_external_change(self._on_external_change)

    # ------------------------------------------------------------------
    # Session persistence
    # ------------------------------------------------------------------
    def restore_session(self) -> bool:
        """Load the persisted session into the store; ``False`` if none."""
        try:
            raw = self.kv.get(SESSION_KEY)
        except StorageUnavailable as e:
            self._degrade(e)
            return False
        restored = False
        if raw is not None:
            try:
                definition = FormDefinition.model_validate_json(raw)
            except ValidationError as e:
                logger.warning("[form-sync] discarding unreadable session snapshot: %s", e)
            else:
                self.store.hydrate(definition)
                restored = True
        self.reload_responses()
        return restored

    def _persist_session(self, definition: FormDefinition) -> None:
        if not self.is_durable:
            return
        try:
            self.kv.set(SESSION_KEY, dump_json(definition))
        except StorageUnavailable as e:
            self._degrade(e)

    def _degrade(self, error: Exception) -> None:
        if not self.is_durable:
            return
        self.is_durable = False
        logger.warning("[form-sync] session storage unavailable, continuing in memory: %s", error)
        self.signals.storageDegraded.emit(str(error))

    # ------------------------------------------------------------------
    # Publication
    # ------------------------------------------------------------------
    def _publish(self, publication_id: str, definition: FormDefinition) -> None:
        self.kv.set(publication_id, dump_json(PublicationSnapshot.from_definition(definition)))
        logger.debug("[form-sync] published %s", publication_id)

    def share(self) -> str:
        """Publish the current form under a new id and return that id."""
        publication_id = new_publication_id()
        try:
            self._publish(publication_id, self.store.state)
        except StorageUnavailable as e:
            logger.error("[form-sync] sharing failed: %s", e)
            raise PublicationError(f"Could not publish form: {e}") from e
        self.store.set_form_id(publication_id)
        logger.info("[form-sync] form shared as %s", publication_id)
        return publication_id

    def share_url(self, publication_id: Optional[str] = None) -> Optional[str]:
        publication_id = publication_id or self.store.state.publication_id
        if not publication_id:
            return None
        return f"{self.settings.public_url}/form/{publication_id}"

    def _on_definition_changed(self, definition: FormDefinition) -> None:
        self._persist_session(definition)
        publication_id = definition.publication_id
        if publication_id:
            try:
                self._publish(publication_id, definition)
            except StorageUnavailable as e:
                logger.error("[form-sync] failed to republish %s: %s", publication_id, e)
                self.signals.publicationFailed.emit(publication_id, str(e))
        key = response_key(publication_id)
        if key != self._responses_key:
            self._responses_key = key
            self.reload_responses()

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------
    @property
    def responses_key(self) -> str:
        return self._responses_key

    @property
    def responses(self) -> list[dict[str, Any]]:
        return list(self._responses)

    def _set_responses(self, responses: list[dict[str, Any]]) -> None:
        self._responses = responses
        self.signals.responsesChanged.emit(self._responses_key, list(responses))

    def reload_responses(self) -> list[dict[str, Any]]:
        try:
            responses = read_responses(self.kv, self._responses_key)
        except (StorageUnavailable, ValidationError) as e:
            logger.warning("[form-sync] could not load responses %s: %s", self._responses_key, e)
            return self.responses
        self._set_responses(responses)
        return self.responses

    def record_response(self, answers: Mapping[str, Any], publication_id: Optional[str] = None) -> list[dict[str, Any]]:
        """Append a submission for the given (or current) form."""
        key = response_key(publication_id or self.store.state.publication_id)
        updated = append_response(self.kv, key, answers)
        if key == self._responses_key:
            self._set_responses(updated)
        return updated

    def _on_external_change(self, key: str, value: Optional[bytes]) -> None:
        if key != self._responses_key:
            return
        try:
            responses = [] if value is None else ResponseList.validate_json(value)
        except ValidationError as e:
            logger.warning("[form-sync] ignoring unreadable responses under %s: %s", key, e)
            return
        logger.debug("[form-sync] %d responses under %s changed elsewhere", len(responses), key)
        self._set_responses(responses)


class ExternalChangeWatcher(QObject):
    """Polls a durable store for other contexts' writes on a Qt timer."""

    def __init__(self, kv: KeyValueStore, *, interval_ms: int | None = None, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self.kv = kv
        self._timer = QTimer(self)
        self._timer.setSingleShot(False)
        self._timer.setInterval(interval_ms or load_settings().poll_interval_ms)
        self._timer.timeout.connect(self.poll_now)

    def start(self) -> None:
        self._timer.start()

    def stop(self) -> None:
        self._timer.stop()

    def is_active(self) -> bool:
        return self._timer.isActive()

    def poll_now(self) -> int:
        try:
            return self.kv.poll_external_changes()
        except StorageUnavailable as e:
            logger.warning("[form-sync] polling for external changes failed: %s", e)
            return 0


__all__ = [
    "ExternalChangeWatcher",
    "FormSynchronizer",
    "RESPONSES_KEY",
    "SESSION_KEY",
    "append_response",
    "is_publication_id",
    "new_publication_id",
    "load_publication",
    "read_responses",
    "response_key",
]
