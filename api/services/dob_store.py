# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Entry store for the Daily Occurrence Book.

Persists entries in MongoDB and enforces the immutability invariant itself:
an entry with ``isImmutable`` set is never written again. Writes are
serialized per officer and create/finalize events are published to the
subscription bridge while the officer's lock is held, so listeners observe
entries in write order.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional, Any, Generator
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pymongo.errors import (
    AutoReconnect,
    ConnectionFailure,
    ServerSelectionTimeoutError,
    NetworkTimeout,
    DuplicateKeyError
)
from pydantic import ValidationError

from middleware.error_handler import (
    NotFoundException,
    ValidationException,
    PersistenceUnavailableException,
    ImmutableEntryException,
    DuplicateEntryException,
    EntryOwnershipException
)
from models.base import utc_now
from models.entities import DOBEntry
from models.enums import EntryEvent
from models.requests import DOBEntryFilters
from .mongodb import MongoDBService, DOB_ENTRIES_COLLECTION, get_mongodb_service
from .subscriptions import DOBSubscriptionBridge

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

TRANSIENT_ERRORS = (AutoReconnect, ConnectionFailure, ServerSelectionTimeoutError, NetworkTimeout)

QUERY_SORT = [("timestamp", -1), ("_id", -1)]

# Fields fixed at creation; update() refuses to touch them
PROTECTED_FIELDS = {"id", "cpo_id", "entry_type", "is_immutable", "submitted_at", "created_at", "updated_at"}


class DOBEntryStore:
    """MongoDB-backed store for DOB entries scoped by officer."""

    def __init__(
        self,
        mongo_service: Optional[MongoDBService] = None,
        bridge: Optional[DOBSubscriptionBridge] = None,
        collection_name: str = DOB_ENTRIES_COLLECTION
    ):
        self.mongo_service = mongo_service or get_mongodb_service()
        self.bridge = bridge
        self.collection_name = collection_name
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, cpo_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(cpo_id)
            if lock is None:
                lock = self._locks[cpo_id] = threading.Lock()
            return lock

    @contextmanager
    def _persistence(self, operation: str, span) -> Generator[None, None, None]:
        """Translate transient backend failures into the persistence error kind."""
        try:
            yield
        except TRANSIENT_ERRORS as e:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            logger.error(
                f"DOB store {operation} failed: backend unavailable",
                extra={"operation": operation, "error": str(e)}
            )
            raise PersistenceUnavailableException(
                f"Entry store unavailable during {operation}"
            ) from e

    def _publish(self, entry: DOBEntry, event: EntryEvent) -> None:
        if self.bridge is not None:
            self.bridge.publish(entry, event)

    def _load_owned(self, entry_id: str, cpo_id: str) -> Dict[str, Any]:
        document = self.mongo_service.find_one(self.collection_name, entry_id)
        if document is None:
            raise NotFoundException(f"DOB entry {entry_id} not found")
        if document.get("cpoId") != cpo_id:
            logger.warning(
                "Cross-officer access to DOB entry rejected",
                extra={"entry_id": entry_id, "cpo_id": cpo_id}
            )
            raise EntryOwnershipException(entry_id)
        return document

    def create(self, entry: DOBEntry) -> DOBEntry:
        """
        Insert a new entry.

        Raises:
            DuplicateEntryException: an entry with the same id already exists
            PersistenceUnavailableException: the backend could not be reached
        """
        with tracer.start_as_current_span("dob_store.create") as span:
            span.set_attributes({
                "dob.entry_id": entry.id,
                "dob.cpo_id": entry.cpo_id,
                "dob.event_type": entry.event_type,
                "dob.entry_type": entry.entry_type
            })

            with self._lock_for(entry.cpo_id):
                with self._persistence("create", span):
                    try:
                        document = self.mongo_service.create(self.collection_name, entry.to_document())
                    except DuplicateKeyError:
                        raise DuplicateEntryException(entry.id)

                stored = DOBEntry.from_document(document)
                self._publish(stored, EntryEvent.CREATED)

            logger.info(
                "DOB entry stored",
                extra={
                    "entry_id": stored.id,
                    "cpo_id": stored.cpo_id,
                    "event_type": stored.event_type,
                    "entry_type": stored.entry_type,
                    "is_immutable": stored.is_immutable
                }
            )
            return stored

    def recover_created(self, entry_id: str, cpo_id: str) -> DOBEntry:
        """
        Load an entry whose insert landed without being acknowledged and
        announce it as created.
        """
        with tracer.start_as_current_span("dob_store.recover_created") as span:
            span.set_attributes({"dob.entry_id": entry_id, "dob.cpo_id": cpo_id})

            with self._lock_for(cpo_id):
                with self._persistence("recover_created", span):
                    document = self._load_owned(entry_id, cpo_id)

                stored = DOBEntry.from_document(document)
                self._publish(stored, EntryEvent.CREATED)

            logger.info(
                "Unacknowledged DOB entry write recovered",
                extra={"entry_id": entry_id, "cpo_id": cpo_id}
            )
            return stored

    def finalize(self, entry_id: str, cpo_id: str) -> DOBEntry:
        """
        Mark an entry immutable.

        Idempotent: an already immutable entry is returned unchanged and no
        event is published.

        Raises:
            NotFoundException: unknown entry id
            EntryOwnershipException: entry belongs to another officer
        """
        with tracer.start_as_current_span("dob_store.finalize") as span:
            span.set_attributes({"dob.entry_id": entry_id, "dob.cpo_id": cpo_id})

            with self._lock_for(cpo_id):
                with self._persistence("finalize", span):
                    document = self._load_owned(entry_id, cpo_id)

                    if document.get("isImmutable"):
                        logger.debug("DOB entry already immutable", extra={"entry_id": entry_id})
                        return DOBEntry.from_document(document)

                    modified = self.mongo_service.update_where(
                        self.collection_name,
                        entry_id,
                        {"cpoId": cpo_id, "isImmutable": False},
                        {"isImmutable": True, "submittedAt": utc_now()}
                    )
                    document = self.mongo_service.find_one(self.collection_name, entry_id)

                finalized = DOBEntry.from_document(document)
                if modified:
                    self._publish(finalized, EntryEvent.FINALIZED)
                    logger.info("DOB entry finalized", extra={"entry_id": entry_id, "cpo_id": cpo_id})

            return finalized

    def update(self, entry_id: str, cpo_id: str, changes: Dict[str, Any]) -> DOBEntry:
        """
        Change fields of a mutable entry.

        Raises:
            ImmutableEntryException: the entry is immutable; nothing is written
            ValidationException: protected field or invalid value
        """
        with tracer.start_as_current_span("dob_store.update") as span:
            span.set_attributes({"dob.entry_id": entry_id, "dob.cpo_id": cpo_id})

            protected = PROTECTED_FIELDS.intersection(changes)
            if protected:
                raise ValidationException(
                    "Cannot change protected entry fields",
                    [{"field": name, "message": "Field is fixed at creation"} for name in sorted(protected)]
                )

            unknown = set(changes) - set(DOBEntry.model_fields)
            if unknown:
                raise ValidationException(
                    "Unknown entry fields",
                    [{"field": name, "message": "Unknown field"} for name in sorted(unknown)]
                )

            with self._lock_for(cpo_id):
                with self._persistence("update", span):
                    document = self._load_owned(entry_id, cpo_id)
                    current = DOBEntry.from_document(document)

                    if current.is_immutable:
                        span.set_status(Status(StatusCode.ERROR, "immutable entry"))
                        logger.warning(
                            "Mutation of immutable DOB entry rejected",
                            extra={"entry_id": entry_id, "cpo_id": cpo_id, "fields": sorted(changes)}
                        )
                        raise ImmutableEntryException(entry_id)

                    try:
                        updated = DOBEntry.model_validate({**current.model_dump(), **changes})
                    except ValidationError as e:
                        raise ValidationException(
                            "Invalid entry update",
                            [{"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                             for err in e.errors()]
                        )

                    new_document = updated.to_document()
                    field_updates = {
                        DOBEntry.model_fields[name].alias or name: new_document[DOBEntry.model_fields[name].alias or name]
                        for name in changes
                    }

                    modified = self.mongo_service.update_where(
                        self.collection_name,
                        entry_id,
                        {"cpoId": cpo_id, "isImmutable": False},
                        field_updates
                    )
                    if not modified:
                        # Finalized by another writer between read and write
                        raise ImmutableEntryException(entry_id)

                    document = self.mongo_service.find_one(self.collection_name, entry_id)

            return DOBEntry.from_document(document)

    def get(self, entry_id: str, cpo_id: str) -> DOBEntry:
        """Fetch one entry, verifying it belongs to ``cpo_id``."""
        with tracer.start_as_current_span("dob_store.get") as span:
            span.set_attributes({"dob.entry_id": entry_id, "dob.cpo_id": cpo_id})
            with self._persistence("get", span):
                document = self._load_owned(entry_id, cpo_id)
            return DOBEntry.from_document(document)

    def query(self, cpo_id: str, filters: Optional[DOBEntryFilters] = None) -> List[DOBEntry]:
        """Entries owned by ``cpo_id`` matching all filters, newest first."""
        with tracer.start_as_current_span("dob_store.query") as span:
            mongo_filters = filters.to_mongo_query() if filters else {}
            span.set_attributes({
                "dob.cpo_id": cpo_id,
                "dob.filter_keys": ",".join(sorted(mongo_filters))
            })

            with self._persistence("query", span):
                documents = self.mongo_service.find_by_cpo(
                    self.collection_name,
                    cpo_id,
                    mongo_filters,
                    sort=QUERY_SORT
                )

            span.set_attribute("dob.result_count", len(documents))
            return [DOBEntry.from_document(document) for document in documents]

    def count(self, cpo_id: str, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count entries owned by ``cpo_id`` matching a raw MongoDB filter."""
        with tracer.start_as_current_span("dob_store.count") as span:
            span.set_attribute("dob.cpo_id", cpo_id)
            with self._persistence("count", span):
                return self.mongo_service.count_by_cpo(self.collection_name, cpo_id, filters)
