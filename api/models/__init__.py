# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the Daily Occurrence Book.
"""

# Base models
from .base import BaseEntity, generate_object_id, utc_now, ensure_utc

# Enumerations
from .enums import (
    DOBEntryType,
    DOBEventType,
    AssignmentStatus,
    EntryEvent
)

# Core entities
from .entities import (
    GPSCoordinates,
    GeoSample,
    DOBEntryMetadata,
    DOBEntry,
    AssignmentSnapshot,
    OfficerContext,
    MAX_DESCRIPTION_LENGTH
)

# Request models
from .requests import (
    DateRange,
    DOBEntryFilters,
    CreateDOBEntryRequest,
    DOBEntryQuery,
    DOBEntryPath,
    StatisticsQuery
)

# Response models
from .responses import (
    HalLink,
    DOBEntryResponse,
    DOBStatisticsResponse,
    ErrorResponse
)

__all__ = [
    # Base
    "BaseEntity",
    "generate_object_id",
    "utc_now",
    "ensure_utc",

    # Enums
    "DOBEntryType",
    "DOBEventType",
    "AssignmentStatus",
    "EntryEvent",

    # Entities
    "GPSCoordinates",
    "GeoSample",
    "DOBEntryMetadata",
    "DOBEntry",
    "AssignmentSnapshot",
    "OfficerContext",
    "MAX_DESCRIPTION_LENGTH",

    # Requests
    "DateRange",
    "DOBEntryFilters",
    "CreateDOBEntryRequest",
    "DOBEntryQuery",
    "DOBEntryPath",
    "StatisticsQuery",

    # Responses
    "HalLink",
    "DOBEntryResponse",
    "DOBStatisticsResponse",
    "ErrorResponse"
]
