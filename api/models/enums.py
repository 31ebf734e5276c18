# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the Daily Occurrence Book service.
"""

from enum import Enum


class DOBEntryType(str, Enum):
    """Provenance of a DOB entry."""
    AUTO = "auto"
    MANUAL = "manual"


class DOBEventType(str, Enum):
    """Kinds of occurrence recorded in the book."""
    ASSIGNMENT_START = "assignment_start"
    ASSIGNMENT_END = "assignment_end"
    LOCATION_CHANGE = "location_change"
    PRINCIPAL_PICKUP = "principal_pickup"
    PRINCIPAL_DROPOFF = "principal_dropoff"
    ROUTE_DEVIATION = "route_deviation"
    COMMUNICATION = "communication"
    MANUAL_NOTE = "manual_note"
    INCIDENT = "incident"
    OTHER = "other"


class AssignmentStatus(str, Enum):
    """Protection assignment lifecycle status."""
    PENDING = "pending"
    ASSIGNED = "assigned"
    EN_ROUTE = "en_route"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EntryEvent(str, Enum):
    """Store events fanned out by the subscription bridge."""
    CREATED = "created"
    FINALIZED = "finalized"
