# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for DOB operations and API endpoints.
"""

import re
from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from .base import ensure_utc
from .entities import GPSCoordinates
from .enums import DOBEntryType, DOBEventType


class DateRange(BaseModel):
    """Inclusive timestamp bounds; either side may be open."""

    start: Optional[datetime] = Field(None, description="Lower bound (inclusive)")
    end: Optional[datetime] = Field(None, description="Upper bound (inclusive)")

    @field_validator('start', 'end')
    @classmethod
    def normalize(cls, v):
        return ensure_utc(v)

    @model_validator(mode='after')
    def validate_order(self):
        """Validate that the range is not inverted."""
        if self.start and self.end and self.start > self.end:
            raise ValueError('Date range start must not be after end')
        return self


class DOBEntryFilters(BaseModel):
    """Filters for DOB entry queries, combined with AND."""

    model_config = ConfigDict(use_enum_values=True)

    assignment_id: Optional[str] = Field(None, description="Filter by assignment ID")
    date_range: Optional[DateRange] = Field(None, description="Filter by timestamp range")
    entry_type: Optional[DOBEntryType] = Field(None, description="Filter by entry provenance")
    event_type: Optional[DOBEventType] = Field(None, description="Filter by event type")
    search_query: Optional[str] = Field(None, max_length=200, description="Case-insensitive description search")

    def to_mongo_query(self) -> Dict[str, Any]:
        """Convert filters to MongoDB query."""
        query = {}

        if self.assignment_id:
            query["assignmentId"] = self.assignment_id

        if self.entry_type:
            query["entryType"] = self.entry_type

        if self.event_type:
            query["eventType"] = self.event_type

        if self.search_query:
            query["description"] = {"$regex": re.escape(self.search_query), "$options": "i"}

        # Date range filter
        if self.date_range and (self.date_range.start or self.date_range.end):
            date_filter = {}
            if self.date_range.start:
                date_filter["$gte"] = self.date_range.start
            if self.date_range.end:
                date_filter["$lte"] = self.date_range.end
            query["timestamp"] = date_filter

        return query


class CreateDOBEntryRequest(BaseModel):
    """Operator-submitted entry; semantic checks happen in the entry factory."""

    model_config = ConfigDict(use_enum_values=True)

    event_type: Optional[DOBEventType] = Field(None, description="Occurrence kind")
    timestamp: Optional[datetime] = Field(None, description="When the occurrence happened")
    description: Optional[str] = Field(None, description="Occurrence description")
    assignment_id: Optional[str] = Field(None, description="Related assignment ID")
    assignment_reference: Optional[str] = Field(None, max_length=50, description="Related assignment reference")
    gps_coordinates: Optional[GPSCoordinates] = Field(None, description="Position captured by the form")
    annotations: Dict[str, str] = Field(default_factory=dict, description="Free-form annotations")


class DOBEntryQuery(BaseModel):
    """Query string parameters for listing entries."""

    assignment_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    entry_type: Optional[DOBEntryType] = None
    event_type: Optional[DOBEventType] = None
    search: Optional[str] = None

    def to_filters(self) -> DOBEntryFilters:
        date_range = None
        if self.date_from or self.date_to:
            date_range = DateRange(start=self.date_from, end=self.date_to)
        return DOBEntryFilters(
            assignment_id=self.assignment_id,
            date_range=date_range,
            entry_type=self.entry_type,
            event_type=self.event_type,
            search_query=self.search or None
        )


class DOBEntryPath(BaseModel):
    """Path parameters for a single entry."""

    entry_id: str = Field(..., description="Entry ID")


class StatisticsQuery(BaseModel):
    """Query string parameters for DOB statistics."""

    days: int = Field(default=30, ge=1, le=365, description="Look-back window in days")
