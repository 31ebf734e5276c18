# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
DOB entry factory: the single construction path for auto and manual entries.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError

from domain.dob import default_description, format_assignment_reference, validate_entry_request
from middleware.error_handler import (
    ValidationException,
    PersistenceUnavailableException,
    DuplicateEntryException
)
from models.base import ensure_utc, utc_now
from models.entities import AssignmentSnapshot, DOBEntry, DOBEntryMetadata, GPSCoordinates
from models.enums import DOBEntryType, DOBEventType, EntryEvent
from models.requests import CreateDOBEntryRequest, DOBEntryFilters
from .dob_store import DOBEntryStore
from .redis import RedisService
from .subscriptions import DOBSubscriptionBridge, Subscription

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_STATISTICS_DAYS = 30


def _pydantic_errors(error: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in error.errors()
    ]


class DOBService:
    """Builds, validates and persists DOB entries."""

    def __init__(
        self,
        store: DOBEntryStore,
        redis_service: Optional[RedisService] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.redis_service = redis_service
        self.clock = clock

    def create_entry(
        self,
        request: CreateDOBEntryRequest,
        cpo_id: Optional[str],
        entry_type: DOBEntryType,
        metadata: Optional[DOBEntryMetadata] = None
    ) -> DOBEntry:
        """
        Validate a request, stamp it and persist it as an immutable entry.

        Args:
            request: Entry fields supplied by the caller
            cpo_id: Owning officer
            entry_type: ``auto`` for engine-generated entries, ``manual`` for the form
            metadata: Provenance details; request annotations are merged in

        Returns:
            The stored entry

        Raises:
            ValidationException: missing or invalid fields; nothing is persisted
            PersistenceUnavailableException: store unreachable after one retry
        """
        entry_type = DOBEntryType(entry_type)

        with tracer.start_as_current_span("dob.create_entry") as span:
            span.set_attributes({
                "dob.cpo_id": cpo_id or "",
                "dob.entry_type": entry_type.value,
                "dob.event_type": request.event_type or ""
            })

            now = self.clock()
            timestamp = ensure_utc(request.timestamp)

            validation = validate_entry_request(
                request.event_type,
                timestamp,
                request.description,
                cpo_id,
                manual=entry_type == DOBEntryType.MANUAL,
                now=now
            )
            if not validation.is_valid:
                span.set_status(Status(StatusCode.ERROR, "validation failed"))
                logger.info(
                    "DOB entry rejected by validation",
                    extra={"cpo_id": cpo_id, "entry_type": entry_type.value, "errors": validation.errors}
                )
                raise ValidationException(
                    "Invalid DOB entry",
                    [{"message": message} for message in validation.errors]
                )

            try:
                metadata_data = (metadata or DOBEntryMetadata()).model_dump()
                if request.annotations:
                    metadata_data["annotations"] = dict(request.annotations)

                entry = DOBEntry(
                    cpo_id=cpo_id,
                    entry_type=entry_type,
                    event_type=request.event_type,
                    timestamp=timestamp,
                    description=request.description,
                    assignment_id=request.assignment_id,
                    assignment_reference=request.assignment_reference,
                    gps_coordinates=request.gps_coordinates,
                    metadata=DOBEntryMetadata.model_validate(metadata_data),
                    is_immutable=True,
                    submitted_at=now
                )
            except ValidationError as e:
                span.set_status(Status(StatusCode.ERROR, "validation failed"))
                raise ValidationException("Invalid DOB entry", _pydantic_errors(e))

            return self._persist(entry)

    def _persist(self, entry: DOBEntry) -> DOBEntry:
        try:
            return self.store.create(entry)
        except PersistenceUnavailableException:
            logger.warning(
                "DOB entry write failed, retrying once",
                extra={"entry_id": entry.id, "cpo_id": entry.cpo_id}
            )

        try:
            return self.store.create(entry)
        except DuplicateEntryException:
            # The first attempt reached the backend after all, unannounced
            return self.store.recover_created(entry.id, entry.cpo_id)

    def create_manual_entry(self, request: CreateDOBEntryRequest, cpo_id: str) -> DOBEntry:
        """Persist an operator-submitted entry."""
        return self.create_entry(
            request,
            cpo_id,
            DOBEntryType.MANUAL,
            DOBEntryMetadata(created_via_form=True)
        )

    def list_entries(self, cpo_id: str, filters: Optional[DOBEntryFilters] = None) -> List[DOBEntry]:
        return self.store.query(cpo_id, filters)

    def get_entry(self, entry_id: str, cpo_id: str) -> DOBEntry:
        return self.store.get(entry_id, cpo_id)

    # Auto-log helpers

    def _log_auto(
        self,
        event_type: DOBEventType,
        cpo_id: str,
        assignment_id: Optional[str],
        assignment_reference: Optional[str] = None,
        gps_coordinates: Optional[GPSCoordinates] = None,
        description: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        **metadata: Any
    ) -> DOBEntry:
        now = self.clock()
        try:
            entry_metadata = DOBEntryMetadata(auto_generated=True, generated_at=now, **metadata)
        except ValidationError as e:
            raise ValidationException("Invalid DOB entry metadata", _pydantic_errors(e))

        request = CreateDOBEntryRequest(
            event_type=event_type,
            timestamp=timestamp or now,
            description=description or default_description(
                event_type,
                assignment_reference or assignment_id,
                reason=entry_metadata.reason,
                distance_meters=entry_metadata.distance_meters
            ),
            assignment_id=assignment_id,
            assignment_reference=assignment_reference,
            gps_coordinates=gps_coordinates
        )
        return self.create_entry(request, cpo_id, DOBEntryType.AUTO, entry_metadata)

    def log_assignment_start(self, cpo_id: str, assignment_id: str, **kwargs: Any) -> DOBEntry:
        return self._log_auto(DOBEventType.ASSIGNMENT_START, cpo_id, assignment_id, **kwargs)

    def log_assignment_end(self, cpo_id: str, assignment_id: str, **kwargs: Any) -> DOBEntry:
        return self._log_auto(DOBEventType.ASSIGNMENT_END, cpo_id, assignment_id, **kwargs)

    def log_location_change(self, cpo_id: str, assignment_id: str, **kwargs: Any) -> DOBEntry:
        """Log movement; ``distance_meters`` is required unless ``manually_triggered``."""
        return self._log_auto(DOBEventType.LOCATION_CHANGE, cpo_id, assignment_id, **kwargs)

    def log_principal_pickup(self, cpo_id: str, assignment_id: str, **kwargs: Any) -> DOBEntry:
        return self._log_auto(DOBEventType.PRINCIPAL_PICKUP, cpo_id, assignment_id, **kwargs)

    def log_principal_dropoff(self, cpo_id: str, assignment_id: str, **kwargs: Any) -> DOBEntry:
        return self._log_auto(DOBEventType.PRINCIPAL_DROPOFF, cpo_id, assignment_id, **kwargs)

    def log_route_deviation(self, cpo_id: str, assignment_id: str, reason: str, **kwargs: Any) -> DOBEntry:
        return self._log_auto(DOBEventType.ROUTE_DEVIATION, cpo_id, assignment_id, reason=reason, **kwargs)

    def log_event(self, event_type: DOBEventType, cpo_id: str, assignment_id: Optional[str],
                  **kwargs: Any) -> DOBEntry:
        """Dispatch to the helper for ``event_type``; other kinds go through the generic path."""
        helpers = {
            DOBEventType.ASSIGNMENT_START: self.log_assignment_start,
            DOBEventType.ASSIGNMENT_END: self.log_assignment_end,
            DOBEventType.LOCATION_CHANGE: self.log_location_change,
            DOBEventType.PRINCIPAL_PICKUP: self.log_principal_pickup,
            DOBEventType.PRINCIPAL_DROPOFF: self.log_principal_dropoff,
        }
        event_type = DOBEventType(event_type)
        helper = helpers.get(event_type)
        if helper is not None:
            return helper(cpo_id, assignment_id, **kwargs)
        return self._log_auto(event_type, cpo_id, assignment_id, **kwargs)

    @staticmethod
    def format_assignment_reference(assignment: AssignmentSnapshot) -> Optional[str]:
        """``PA-YYYYMMDD-XXX`` code for an assignment, or None without a creation date."""
        if assignment.created_at is None:
            return None
        return format_assignment_reference(assignment.id, ensure_utc(assignment.created_at))

    # Statistics

    def get_statistics(self, cpo_id: str, days: int = DEFAULT_STATISTICS_DAYS) -> Dict[str, int]:
        """
        Entry counts for an officer.

        Served from Redis when cached; the cache is dropped whenever one of
        the officer's entries is created or finalized.
        """
        with tracer.start_as_current_span("dob.get_statistics") as span:
            span.set_attributes({"dob.cpo_id": cpo_id, "dob.days": days})

            if self.redis_service is not None:
                cached = self.redis_service.get_cached_dob_statistics(cpo_id, days)
                if cached is not None:
                    span.set_attribute("dob.cache_hit", True)
                    return cached

            since = self.clock() - timedelta(days=days)
            statistics = {
                "total_entries": self.store.count(cpo_id),
                "auto_entries": self.store.count(cpo_id, {"entryType": DOBEntryType.AUTO.value}),
                "manual_entries": self.store.count(cpo_id, {"entryType": DOBEntryType.MANUAL.value}),
                "immutable_entries": self.store.count(cpo_id, {"isImmutable": True}),
                "recent_entries": self.store.count(cpo_id, {"timestamp": {"$gte": since}}),
                "days": days
            }

            span.set_attribute("dob.cache_hit", False)
            if self.redis_service is not None:
                self.redis_service.cache_dob_statistics(cpo_id, days, statistics)

            return statistics

    def handle_entry_event(self, entry: DOBEntry, event: EntryEvent) -> None:
        """Bridge listener dropping cached statistics for the entry's officer."""
        if self.redis_service is not None:
            self.redis_service.invalidate_dob_statistics(entry.cpo_id)

    def attach_statistics_invalidation(self, bridge: DOBSubscriptionBridge) -> Subscription:
        return bridge.subscribe_all(self.handle_entry_event)
