# SPDX-License-Identifier: Apache-2.0

"""
Daily Occurrence Book domain logic.

This module contains pure functions for classifying assignment transitions
into audit events, building default entry descriptions, validating entry
requests and matching entries against query filters.
"""

from typing import List, Dict, Tuple, Optional
from dataclasses import dataclass, field
from datetime import datetime

from models.entities import DOBEntry, MAX_DESCRIPTION_LENGTH
from models.enums import AssignmentStatus, DOBEventType
from models.requests import DOBEntryFilters


# Exact (previous, current) matches; the events of one transition fire in list order
TRANSITION_EVENTS: Dict[Tuple[AssignmentStatus, AssignmentStatus], List[DOBEventType]] = {
    (AssignmentStatus.PENDING, AssignmentStatus.ASSIGNED): [DOBEventType.ASSIGNMENT_START],
    (AssignmentStatus.ASSIGNED, AssignmentStatus.ACTIVE): [DOBEventType.PRINCIPAL_PICKUP],
    (AssignmentStatus.ACTIVE, AssignmentStatus.COMPLETED): [
        DOBEventType.PRINCIPAL_DROPOFF,
        DOBEventType.ASSIGNMENT_END
    ],
    (AssignmentStatus.EN_ROUTE, AssignmentStatus.COMPLETED): [
        DOBEventType.PRINCIPAL_DROPOFF,
        DOBEventType.ASSIGNMENT_END
    ],
}

DEFAULT_DESCRIPTIONS = {
    DOBEventType.ASSIGNMENT_START: "Protection detail commenced",
    DOBEventType.ASSIGNMENT_END: "Protection detail completed",
    DOBEventType.LOCATION_CHANGE: "Location change detected",
    DOBEventType.PRINCIPAL_PICKUP: "Principal collected from location",
    DOBEventType.PRINCIPAL_DROPOFF: "Principal delivered to secure destination",
}


@dataclass
class ValidationResult:
    """Result of entry request validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)


def classify_transition(
    previous_status: Optional[str],
    current_status: Optional[str]
) -> List[DOBEventType]:
    """
    Map an assignment status transition to the audit events it produces.

    Args:
        previous_status: Status from the stored baseline snapshot
        current_status: Status from the incoming snapshot

    Returns:
        Events to log in order; empty for unrecognized or repeated transitions
    """
    try:
        key = (AssignmentStatus(previous_status), AssignmentStatus(current_status))
    except ValueError:
        return []
    return list(TRANSITION_EVENTS.get(key, []))


def default_description(
    event_type: DOBEventType,
    assignment_reference: Optional[str] = None,
    reason: Optional[str] = None,
    distance_meters: Optional[float] = None
) -> str:
    """Human-readable description used when the caller supplies none."""
    event_type = DOBEventType(event_type)

    if event_type == DOBEventType.ROUTE_DEVIATION:
        return f"Route deviation: {reason or 'unspecified'}"

    if event_type == DOBEventType.LOCATION_CHANGE and distance_meters is not None:
        return f"Significant location change detected ({round(distance_meters)}m)"

    base = DEFAULT_DESCRIPTIONS.get(event_type)
    if base is None:
        return event_type.value.replace("_", " ").capitalize()

    if assignment_reference:
        return f"{base} - {assignment_reference}"
    return base


def format_assignment_reference(assignment_id: str, created_at: datetime) -> str:
    """Build the ``PA-YYYYMMDD-XXX`` display code for an assignment."""
    return f"PA-{created_at.strftime('%Y%m%d')}-{assignment_id[:3].upper()}"


def validate_entry_request(
    event_type: Optional[str],
    timestamp: Optional[datetime],
    description: Optional[str],
    cpo_id: Optional[str],
    manual: bool,
    now: datetime
) -> ValidationResult:
    """
    Validate the fields every entry needs before it is built.

    Manual entries are additionally checked for future timestamps and for
    description length.

    Args:
        event_type: Occurrence kind
        timestamp: When the occurrence happened (timezone-aware)
        description: Free text description
        cpo_id: Owning officer
        manual: Whether the request comes from the operator form
        now: Reference time for the future-timestamp check

    Returns:
        ValidationResult with validation status and errors
    """
    errors = []

    if not event_type:
        errors.append("Event type is required")
    else:
        try:
            DOBEventType(event_type)
        except ValueError:
            errors.append(f"Unknown event type: {event_type}")

    if timestamp is None:
        errors.append("Timestamp is required")

    if description is None or not description.strip():
        errors.append("Description is required")

    if not cpo_id:
        errors.append("Officer ID is required")

    if manual:
        if timestamp is not None and timestamp > now:
            errors.append("Timestamp cannot be in the future")
        if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
            errors.append(f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters")

    return ValidationResult(
        is_valid=len(errors) == 0,
        errors=errors
    )


def matches_filters(entry: DOBEntry, filters: Optional[DOBEntryFilters]) -> bool:
    """
    Check an entry against query filters, combined with AND.

    Mirrors ``DOBEntryFilters.to_mongo_query`` for in-process consumers.
    """
    if filters is None:
        return True

    if filters.assignment_id and entry.assignment_id != filters.assignment_id:
        return False

    if filters.entry_type and entry.entry_type != filters.entry_type:
        return False

    if filters.event_type and entry.event_type != filters.event_type:
        return False

    if filters.date_range:
        if filters.date_range.start and entry.timestamp < filters.date_range.start:
            return False
        if filters.date_range.end and entry.timestamp > filters.date_range.end:
            return False

    if filters.search_query:
        if filters.search_query.lower() not in entry.description.lower():
            return False

    return True
