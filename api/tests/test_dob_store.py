# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the officer-scoped DOB entry store.
"""

import threading
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from pymongo.errors import AutoReconnect, ServerSelectionTimeoutError

from middleware.error_handler import (
    DuplicateEntryException, EntryOwnershipException, ImmutableEntryException,
    NotFoundException, PersistenceUnavailableException, ValidationException
)
from models.entities import DOBEntry
from models.enums import DOBEntryType, DOBEventType, EntryEvent
from models.requests import DOBEntryFilters, DateRange
from services.mongodb import DOB_ENTRIES_COLLECTION

BASE_TIME = datetime(2024, 3, 15, 8, 0, tzinfo=timezone.utc)


def make_entry(cpo_id="cpo-1", minutes=0, immutable=True, **overrides):
    data = {
        "cpo_id": cpo_id,
        "entry_type": DOBEntryType.MANUAL,
        "event_type": DOBEventType.INCIDENT,
        "timestamp": BASE_TIME + timedelta(minutes=minutes),
        "description": "Routine check",
        "is_immutable": immutable,
        "submitted_at": BASE_TIME if immutable else None
    }
    data.update(overrides)
    return DOBEntry(**data)


@pytest.fixture
def events(bridge):
    """Collected (entry, event) pairs delivered by the bridge."""
    received = []
    bridge.subscribe_all(lambda entry, event: received.append((entry, event)))
    return received


class TestCreateAndGet:
    """Test entry creation and lookup."""

    def test_create_then_get(self, store, events):
        entry = make_entry()
        stored = store.create(entry)

        assert stored.id == entry.id
        assert store.get(entry.id, "cpo-1").description == "Routine check"
        assert [(e.id, event) for e, event in events] == [(entry.id, EntryEvent.CREATED)]

    def test_duplicate_id_rejected(self, store):
        entry = make_entry()
        store.create(entry)

        with pytest.raises(DuplicateEntryException) as exc_info:
            store.create(entry)
        assert exc_info.value.status_code == 409

    def test_get_unknown_entry(self, store):
        with pytest.raises(NotFoundException):
            store.get("65f3c0a0e4b0a1b2c3d4e5f6", "cpo-1")

    def test_get_malformed_id_is_not_found(self, store):
        with pytest.raises(NotFoundException):
            store.get("not-an-object-id", "cpo-1")

    def test_other_officers_entry_is_rejected(self, store):
        entry = store.create(make_entry(cpo_id="cpo-2"))

        with pytest.raises(EntryOwnershipException) as exc_info:
            store.get(entry.id, "cpo-1")
        assert exc_info.value.status_code == 403


class TestImmutability:
    """Test that immutable entries never change."""

    def test_update_of_immutable_entry_leaves_document_unchanged(self, store, fake_mongo, events):
        entry = store.create(make_entry())
        before = fake_mongo.raw(DOB_ENTRIES_COLLECTION, entry.id)

        with pytest.raises(ImmutableEntryException) as exc_info:
            store.update(entry.id, "cpo-1", {"description": "Rewritten history"})

        assert exc_info.value.error_type == "immutable-entry"
        assert fake_mongo.raw(DOB_ENTRIES_COLLECTION, entry.id) == before
        assert len(events) == 1

    def test_update_of_mutable_entry(self, store):
        entry = store.create(make_entry(immutable=False))

        updated = store.update(entry.id, "cpo-1", {"description": "Imported draft, corrected"})

        assert updated.description == "Imported draft, corrected"
        assert updated.is_immutable is False

    def test_protected_fields_cannot_change(self, store):
        entry = store.create(make_entry(immutable=False))

        with pytest.raises(ValidationException):
            store.update(entry.id, "cpo-1", {"cpo_id": "cpo-2"})
        with pytest.raises(ValidationException):
            store.update(entry.id, "cpo-1", {"is_immutable": True})

    def test_unknown_fields_rejected(self, store):
        entry = store.create(make_entry(immutable=False))

        with pytest.raises(ValidationException):
            store.update(entry.id, "cpo-1", {"colour": "red"})

    def test_finalize_mutable_entry(self, store, events):
        entry = store.create(make_entry(immutable=False))

        finalized = store.finalize(entry.id, "cpo-1")

        assert finalized.is_immutable is True
        assert finalized.submitted_at is not None
        assert [event for _, event in events] == [EntryEvent.CREATED, EntryEvent.FINALIZED]

        with pytest.raises(ImmutableEntryException):
            store.update(entry.id, "cpo-1", {"description": "Too late"})

    def test_finalize_is_idempotent(self, store, events):
        entry = store.create(make_entry())

        first = store.finalize(entry.id, "cpo-1")
        second = store.finalize(entry.id, "cpo-1")

        assert first.model_dump() == second.model_dump()
        assert [event for _, event in events] == [EntryEvent.CREATED]

    def test_finalize_other_officers_entry(self, store):
        entry = store.create(make_entry(cpo_id="cpo-2", immutable=False))

        with pytest.raises(EntryOwnershipException):
            store.finalize(entry.id, "cpo-1")


class TestQuery:
    """Test filtered queries."""

    @pytest.fixture
    def populated(self, store):
        store.create(make_entry(minutes=0, assignment_id="a-1", entry_type="auto",
                                event_type="assignment_start", description="Protection detail commenced"))
        store.create(make_entry(minutes=10, assignment_id="a-1", description="Suspicious VEHICLE at gate"))
        store.create(make_entry(minutes=20, assignment_id="a-2", description="Vehicle inspection"))
        store.create(make_entry(minutes=30, cpo_id="cpo-2", assignment_id="a-1", description="Vehicle seen"))
        return store

    def test_newest_first_and_scoped_to_officer(self, populated):
        entries = populated.query("cpo-1")

        assert [e.timestamp for e in entries] == sorted((e.timestamp for e in entries), reverse=True)
        assert len(entries) == 3
        assert all(e.cpo_id == "cpo-1" for e in entries)

    def test_filters_combine_with_and(self, populated):
        entries = populated.query("cpo-1", DOBEntryFilters(assignment_id="a-1", search_query="vehicle"))

        assert [e.description for e in entries] == ["Suspicious VEHICLE at gate"]

    def test_search_is_case_insensitive(self, populated):
        entries = populated.query("cpo-1", DOBEntryFilters(search_query="vEhIcLe"))

        assert [e.description for e in entries] == ["Vehicle inspection", "Suspicious VEHICLE at gate"]

    def test_search_treats_input_literally(self, populated):
        assert populated.query("cpo-1", DOBEntryFilters(search_query=".*")) == []

    def test_entry_and_event_type_filters(self, populated):
        entries = populated.query("cpo-1", DOBEntryFilters(entry_type="auto", event_type="assignment_start"))
        assert len(entries) == 1

        assert populated.query("cpo-1", DOBEntryFilters(entry_type="auto", event_type="incident")) == []

    def test_date_range_is_inclusive(self, populated):
        window = DateRange(start=BASE_TIME + timedelta(minutes=10), end=BASE_TIME + timedelta(minutes=20))
        entries = populated.query("cpo-1", DOBEntryFilters(date_range=window))

        assert len(entries) == 2

    def test_same_timestamp_orders_by_insertion(self, store):
        first = store.create(make_entry(description="first"))
        second = store.create(make_entry(description="second"))

        assert [e.id for e in store.query("cpo-1")] == [second.id, first.id]

    def test_count(self, populated):
        assert populated.count("cpo-1") == 3
        assert populated.count("cpo-1", {"entryType": "manual"}) == 2
        assert populated.count("cpo-2") == 1


class TestPersistenceFailures:
    """Test translation of transient backend errors."""

    def test_transient_error_on_create(self, store, fake_mongo, events):
        fake_mongo.failures.append(AutoReconnect("connection reset"))

        with pytest.raises(PersistenceUnavailableException) as exc_info:
            store.create(make_entry())

        assert exc_info.value.status_code == 503
        assert events == []
        assert store.count("cpo-1") == 0

    def test_transient_error_on_query(self, store, fake_mongo):
        fake_mongo.failures.append(ServerSelectionTimeoutError("no servers"))

        with pytest.raises(PersistenceUnavailableException):
            store.query("cpo-1")


class TestConcurrentWrites:
    """Test per-officer write serialization."""

    def test_concurrent_create_finalize_update(self, store, fake_mongo, events):
        drafts = [store.create(make_entry(immutable=False, minutes=i)) for i in range(8)]
        del events[:]

        writes = []
        real_create = fake_mongo.create
        real_update_where = fake_mongo.update_where

        def logged_create(collection, document):
            stored = real_create(collection, document)
            writes.append((str(document["_id"]), EntryEvent.CREATED))
            return stored

        def logged_update_where(collection, doc_id, conditions, updates):
            modified = real_update_where(collection, doc_id, conditions, updates)
            if modified:
                writes.append((doc_id, EntryEvent.FINALIZED if updates.get("isImmutable") else "updated"))
            return modified

        start = threading.Barrier(len(drafts) * 3)
        rejected_updates = []

        def create_one(i):
            start.wait()
            store.create(make_entry(minutes=100 + i))

        def finalize_one(draft):
            start.wait()
            store.finalize(draft.id, "cpo-1")

        def update_one(draft):
            start.wait()
            try:
                store.update(draft.id, "cpo-1", {"description": "Amended draft"})
            except ImmutableEntryException:
                rejected_updates.append(draft.id)

        threads = []
        for i, draft in enumerate(drafts):
            threads.append(threading.Thread(target=create_one, args=(i,)))
            threads.append(threading.Thread(target=finalize_one, args=(draft,)))
            threads.append(threading.Thread(target=update_one, args=(draft,)))

        with patch.object(fake_mongo, "create", side_effect=logged_create), \
                patch.object(fake_mongo, "update_where", side_effect=logged_update_where):
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(timeout=10)

        assert not any(thread.is_alive() for thread in threads)

        # Deliveries follow write order exactly
        published_writes = [write for write in writes if write[1] != "updated"]
        assert [(entry.id, event) for entry, event in events] == published_writes
        assert len(published_writes) == len(drafts) * 2

        # No draft was amended after it was finalized
        for draft in drafts:
            kinds = [kind for entry_id, kind in writes if entry_id == draft.id]
            finalized_at = kinds.index(EntryEvent.FINALIZED)
            assert "updated" not in kinds[finalized_at + 1:]

            document = fake_mongo.raw(DOB_ENTRIES_COLLECTION, draft.id)
            assert document["isImmutable"] is True
            if draft.id in rejected_updates:
                assert document["description"] == "Routine check"
            else:
                assert document["description"] == "Amended draft"


class TestRecovery:
    """Test announcing writes that landed without acknowledgement."""

    def test_recover_created_publishes_stored_entry(self, store, fake_mongo, events):
        entry = make_entry()
        fake_mongo.create(DOB_ENTRIES_COLLECTION, entry.to_document())

        recovered = store.recover_created(entry.id, "cpo-1")

        assert recovered.id == entry.id
        assert [(e.id, event) for e, event in events] == [(entry.id, EntryEvent.CREATED)]

    def test_recover_created_checks_ownership(self, store, fake_mongo, events):
        entry = make_entry(cpo_id="cpo-2")
        fake_mongo.create(DOB_ENTRIES_COLLECTION, entry.to_document())

        with pytest.raises(EntryOwnershipException):
            store.recover_created(entry.id, "cpo-1")
        assert events == []
