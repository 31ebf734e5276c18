# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and validation.
"""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict
from bson import ObjectId


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BaseEntity(BaseModel):
    """Base entity with common fields for all stored documents."""

    model_config = ConfigDict(
        # Allow population by field name or alias
        populate_by_name=True,
        # Use enum values instead of enum objects
        use_enum_values=True,
        # Validate assignment
        validate_assignment=True
    )

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt", description="Creation timestamp")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt", description="Last update timestamp")
    schema_version: int = Field(default=1, alias="schemaVersion", description="Schema version for migrations")

    def to_document(self) -> dict:
        """Serialize to a MongoDB document using camelCase aliases."""
        document = self.model_dump(by_alias=True, exclude={"id"})
        document["_id"] = ObjectId(self.id)
        return document

    @classmethod
    def from_document(cls, document: dict):
        """Build an entity from a stored document (``_id`` or ``id`` key)."""
        data = dict(document)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)
