# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models for API endpoints with HAL support.
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime


class HalLink(BaseModel):
    """HAL link representation."""

    href: str = Field(..., description="Link URL")
    method: Optional[str] = Field(None, description="HTTP method")
    type: Optional[str] = Field(None, description="Content type")
    title: Optional[str] = Field(None, description="Link title")
    templated: Optional[bool] = Field(None, description="Whether URL is templated")


class DOBEntryResponse(BaseModel):
    """DOB entry response model."""

    id: str = Field(..., description="Entry ID")
    assignment_id: Optional[str] = Field(None, description="Originating assignment")
    assignment_reference: Optional[str] = Field(None, description="Assignment reference")
    cpo_id: str = Field(..., description="Owning officer")
    entry_type: str = Field(..., description="Entry provenance")
    event_type: str = Field(..., description="Occurrence kind")
    timestamp: datetime = Field(..., description="When the occurrence happened")
    gps_coordinates: Optional[Dict[str, float]] = Field(None, description="Position at the time")
    description: str = Field(..., description="Occurrence description")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Provenance details")
    is_immutable: bool = Field(..., description="Entry is finalized")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")
    submitted_at: Optional[datetime] = Field(None, description="Finalization timestamp")


class DOBStatisticsResponse(BaseModel):
    """Entry counts for an officer."""

    total_entries: int = Field(..., description="All entries")
    auto_entries: int = Field(..., description="Automatically generated entries")
    manual_entries: int = Field(..., description="Operator-submitted entries")
    immutable_entries: int = Field(..., description="Finalized entries")
    recent_entries: int = Field(..., description="Entries inside the look-back window")
    days: int = Field(..., description="Look-back window in days")


class ErrorResponse(BaseModel):
    """RFC 7807 problem details response."""

    type: str = Field(..., description="Problem type URI")
    title: str = Field(..., description="Short summary")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Human-readable explanation")
    instance: str = Field(..., description="Request path")
    errors: Optional[List[Dict[str, Any]]] = Field(None, description="Validation errors")
