import json
import logging

import pytest

from modules.form_builder import FormDefinitionStore, PublicationError
from modules.form_builder.services.sync import (
    SESSION_KEY,
    ExternalChangeWatcher,
    FormSynchronizer,
    load_publication,
    read_responses,
    response_key,
)
from utils.durable_store import MemoryKeyValueStore, StorageUnavailable


class _BrokenStore(MemoryKeyValueStore):
    """Store whose reads and/or writes fail like an unavailable backend."""

    def __init__(self, *, fail_get=False, fail_set=False):
        super().__init__()
        self.fail_get = fail_get
        self.fail_set = fail_set

    def get(self, key):
        if self.fail_get:
            raise StorageUnavailable("disk gone")
        return super().get(key)

    def set(self, key, value):
        if self.fail_set:
            raise StorageUnavailable("disk gone")
        super().set(key, value)


def _populate(store: FormDefinitionStore) -> None:
    store.set_form_title("Feedback")
    step_id = store.current_step().id
    store.add_field(step_id, {"type": "text", "label": "Name", "required": True})
    store.add_step("Details")


def test_every_mutation_writes_session_snapshot(builder_kv, settings):
    store = FormDefinitionStore()
    FormSynchronizer(store, builder_kv, settings=settings)
    _populate(store)
    store.toggle_dark_mode()
    snapshot = json.loads(builder_kv.get(SESSION_KEY))
    assert snapshot["title"] == "Feedback"
    assert len(snapshot["steps"]) == 2
    assert snapshot["isDarkMode"] is True
    assert snapshot["currentStepIndex"] == 0


def test_restore_session_in_new_context(db_path, builder_kv, settings):
    from utils.durable_store import SqliteKeyValueStore

    store = FormDefinitionStore()
    FormSynchronizer(store, builder_kv, settings=settings)
    _populate(store)

    reopened = FormDefinitionStore()
    sync = FormSynchronizer(reopened, SqliteKeyValueStore(db_path), settings=settings)
    assert sync.restore_session() is True
    assert reopened.state == store.state


def test_restore_without_snapshot_keeps_default(builder_kv, settings):
    store = FormDefinitionStore()
    sync = FormSynchronizer(store, builder_kv, settings=settings)
    assert sync.restore_session() is False
    assert len(store.state.steps) == 1


def test_corrupt_session_snapshot_is_ignored(builder_kv, settings, caplog):
    builder_kv.set(SESSION_KEY, b'{"steps": []}')
    store = FormDefinitionStore()
    sync = FormSynchronizer(store, builder_kv, settings=settings)
    with caplog.at_level(logging.WARNING):
        assert sync.restore_session() is False
    assert "unreadable session" in caplog.text
    assert len(store.state.steps) == 1


def test_session_degrades_to_memory_when_storage_fails(settings, caplog):
    kv = _BrokenStore(fail_set=True)
    store = FormDefinitionStore()
    sync = FormSynchronizer(store, kv, settings=settings)
    degraded = []
    store.signals.storageDegraded.connect(degraded.append)
    with caplog.at_level(logging.WARNING):
        store.set_form_title("Still works")
        store.add_step("Two")
    assert store.state.title == "Still works"
    assert sync.is_durable is False
    assert degraded == ["disk gone"]
    assert "continuing in memory" in caplog.text


def test_share_publishes_snapshot_readable_by_other_context(builder_kv, filler_kv, settings):
    store = FormDefinitionStore()
    sync = FormSynchronizer(store, builder_kv, settings=settings)
    _populate(store)

    publication_id = sync.share()
    assert store.state.publication_id == publication_id
    assert sync.share_url() == f"https://forms.test/form/{publication_id}"

    loaded = load_publication(filler_kv, publication_id)
    assert loaded is not None
    assert loaded.title == store.state.title
    assert loaded.steps == store.state.steps


def test_edits_after_share_overwrite_publication(builder_kv, filler_kv, settings):
    store = FormDefinitionStore()
    sync = FormSynchronizer(store, builder_kv, settings=settings)
    publication_id = sync.share()
    store.set_form_title("Renamed later")
    assert load_publication(filler_kv, publication_id).title == "Renamed later"


def test_share_failure_raises_and_leaves_form_unpublished(settings):
    store = FormDefinitionStore()
    sync = FormSynchronizer(store, _BrokenStore(fail_set=True), settings=settings)
    with pytest.raises(PublicationError):
        sync.share()
    assert store.state.publication_id is None
    assert sync.share_url() is None


def test_republish_failure_is_signalled(settings):
    kv = _BrokenStore()
    store = FormDefinitionStore()
    sync = FormSynchronizer(store, kv, settings=settings)
    publication_id = sync.share()
    failures = []
    store.signals.publicationFailed.connect(lambda pid, msg: failures.append(pid))
    kv.fail_set = True
    store.set_form_title("offline edit")
    assert failures == [publication_id]


def test_load_unknown_publication_returns_none(filler_kv):
    assert load_publication(filler_kv, "form-missing") is None


def test_responses_append_in_order_to_default_key(builder_kv, settings):
    store = FormDefinitionStore()
    sync = FormSynchronizer(store, builder_kv, settings=settings)
    sync.record_response({"name": "first"})
    sync.record_response({"name": "second"})
    assert response_key(None) == "form-responses"
    assert read_responses(builder_kv, "form-responses") == [{"name": "first"}, {"name": "second"}]
    assert sync.responses == [{"name": "first"}, {"name": "second"}]


def test_response_key_follows_publication(builder_kv, settings):
    store = FormDefinitionStore()
    sync = FormSynchronizer(store, builder_kv, settings=settings)
    sync.record_response({"draft": True})
    publication_id = sync.share()
    assert sync.responses_key == f"form-responses-{publication_id}"
    assert sync.responses == []
    sync.record_response({"live": True})
    assert read_responses(builder_kv, sync.responses_key) == [{"live": True}]


def test_external_responses_reach_builder_view(builder_kv, filler_kv, settings):
    from modules.form_builder.services.sync import append_response

    store = FormDefinitionStore()
    sync = FormSynchronizer(store, builder_kv, settings=settings)
    publication_id = sync.share()
    changes = []
    store.signals.responsesChanged.connect(lambda key, rows: changes.append((key, rows)))

    append_response(filler_kv, response_key(publication_id), {"name": "from filler"})
    assert sync.responses == []
    assert builder_kv.poll_external_changes() == 1
    assert sync.responses == [{"name": "from filler"}]
    assert changes[-1] == (sync.responses_key, [{"name": "from filler"}])


def test_own_writes_do_not_notify_builder(builder_kv, settings):
    store = FormDefinitionStore()
    sync = FormSynchronizer(store, builder_kv, settings=settings)
    sync.record_response({"a": 1})
    store.set_form_title("x")
    assert builder_kv.poll_external_changes() == 0


def test_watcher_polls_store(qapp, builder_kv, filler_kv):
    watcher = ExternalChangeWatcher(builder_kv, interval_ms=50)
    seen = []
    builder_kv.on_external_change(lambda key, value: seen.append(key))
    filler_kv.set("form-responses", b"[]")
    assert watcher.poll_now() == 1
    assert seen == ["form-responses"]
    watcher.start()
    assert watcher.is_active()
    watcher.stop()
    assert not watcher.is_active()


def test_watcher_logs_unavailable_storage(qapp, caplog):
    class _Failing(MemoryKeyValueStore):
        def poll_external_changes(self):
            raise StorageUnavailable("locked")

    watcher = ExternalChangeWatcher(_Failing(), interval_ms=50)
    with caplog.at_level(logging.WARNING):
        assert watcher.poll_now() == 0
    assert "polling for external changes failed" in caplog.text
