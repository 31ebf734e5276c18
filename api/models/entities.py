# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the Daily Occurrence Book.
"""

from datetime import datetime
from typing import Optional, Dict
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from .base import BaseEntity, ensure_utc, utc_now
from .enums import DOBEntryType, DOBEventType, AssignmentStatus

MAX_DESCRIPTION_LENGTH = 1000
MAX_ANNOTATIONS = 10
MAX_ANNOTATION_KEY_LENGTH = 50
MAX_ANNOTATION_VALUE_LENGTH = 200


class GPSCoordinates(BaseModel):
    """Position attached to an entry."""

    model_config = ConfigDict(populate_by_name=True)

    latitude: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in degrees")
    accuracy_meters: float = Field(default=0.0, ge=0, alias="accuracyMeters", description="Reported accuracy radius")


class GeoSample(BaseModel):
    """Ephemeral position sample held by the geofence monitor."""

    latitude: float
    longitude: float
    accuracy_meters: float = 0.0
    taken_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_coordinates(cls, coordinates: GPSCoordinates) -> "GeoSample":
        return cls(
            latitude=coordinates.latitude,
            longitude=coordinates.longitude,
            accuracy_meters=coordinates.accuracy_meters
        )


class DOBEntryMetadata(BaseModel):
    """Provenance details for an entry; unknown keys are rejected."""

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
        extra="forbid"
    )

    auto_generated: bool = Field(default=False, alias="autoGenerated")
    generated_at: Optional[datetime] = Field(None, alias="generatedAt")
    manually_triggered: bool = Field(default=False, alias="manuallyTriggered")
    created_via_form: bool = Field(default=False, alias="createdViaForm")
    previous_status: Optional[AssignmentStatus] = Field(None, alias="previousStatus")
    current_status: Optional[AssignmentStatus] = Field(None, alias="currentStatus")
    distance_meters: Optional[int] = Field(None, ge=0, alias="distanceMeters")
    reason: Optional[str] = Field(None, max_length=500)
    annotations: Dict[str, str] = Field(default_factory=dict)

    @field_validator('annotations')
    @classmethod
    def validate_annotations(cls, v):
        """Keep free-form annotations small and flat."""
        if len(v) > MAX_ANNOTATIONS:
            raise ValueError(f'At most {MAX_ANNOTATIONS} annotations are allowed')
        for key, value in v.items():
            if not key or len(key) > MAX_ANNOTATION_KEY_LENGTH:
                raise ValueError(f'Annotation key must be 1-{MAX_ANNOTATION_KEY_LENGTH} characters')
            if len(value) > MAX_ANNOTATION_VALUE_LENGTH:
                raise ValueError(f'Annotation "{key}" exceeds {MAX_ANNOTATION_VALUE_LENGTH} characters')
        return v


class DOBEntry(BaseEntity):
    """One row of an officer's Daily Occurrence Book."""

    assignment_id: Optional[str] = Field(None, alias="assignmentId", description="Originating assignment")
    assignment_reference: Optional[str] = Field(None, alias="assignmentReference", description="Human-readable assignment code")
    cpo_id: str = Field(..., min_length=1, alias="cpoId", description="Owning officer")
    entry_type: DOBEntryType = Field(..., alias="entryType", description="Entry provenance")
    event_type: DOBEventType = Field(..., alias="eventType", description="Occurrence kind")
    timestamp: datetime = Field(..., description="When the occurrence happened")
    gps_coordinates: Optional[GPSCoordinates] = Field(None, alias="gpsCoordinates", description="Position at the time")
    description: str = Field(..., min_length=1, description="Occurrence description")
    metadata: DOBEntryMetadata = Field(default_factory=DOBEntryMetadata, description="Provenance details")
    is_immutable: bool = Field(default=False, alias="isImmutable", description="Entry is finalized")
    submitted_at: Optional[datetime] = Field(None, alias="submittedAt", description="Finalization timestamp")

    @field_validator('timestamp', 'created_at', 'updated_at', 'submitted_at')
    @classmethod
    def normalize_datetimes(cls, v):
        return ensure_utc(v)

    @field_validator('description')
    @classmethod
    def validate_description(cls, v):
        """Validate description."""
        if not v.strip():
            raise ValueError('Description cannot be empty')
        return v

    @model_validator(mode='after')
    def validate_event_metadata(self):
        """Auto entries carry the metadata their event type needs."""
        if self.entry_type == DOBEntryType.AUTO:
            if self.event_type == DOBEventType.ROUTE_DEVIATION and not self.metadata.reason:
                raise ValueError('Route deviation entries require a reason')
            if (self.event_type == DOBEventType.LOCATION_CHANGE
                    and not self.metadata.manually_triggered
                    and self.metadata.distance_meters is None):
                raise ValueError('Location change entries require distance_meters')
        return self


class AssignmentSnapshot(BaseModel):
    """Read-only view of an assignment as delivered by the assignment service."""

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True
    )

    id: str = Field(..., min_length=1)
    status: AssignmentStatus
    cpo_id: Optional[str] = Field(None, alias="cpoId")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class OfficerContext(BaseModel):
    """Authenticated officer for request processing."""

    cpo_id: str = Field(..., description="Authenticated officer ID")
    name: Optional[str] = Field(None, description="Officer display name")
    token_payload: Optional[Dict] = Field(None, description="Original JWT payload")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")
    session_id: Optional[str] = Field(None, description="Session identifier")
