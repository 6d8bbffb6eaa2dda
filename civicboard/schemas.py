"""Pydantic request/response models shared by the API and the client.

Field names are snake_case in Python and camelCase on the wire.
"""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import Neighborhood, SubmissionCategory, SubmissionStatus


class CamelModel(BaseModel):
    """Base model serialising with camelCase aliases."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


class SubmissionCreate(CamelModel):
    """Validated input for a new submission."""
    category: SubmissionCategory
    status: SubmissionStatus = SubmissionStatus.OPEN
    title: str = Field(min_length=3, description="Title must be at least 3 characters")
    description: str = Field(min_length=10, description="Description must be at least 10 characters")
    neighborhood: Neighborhood | None = None
    contact_name: str | None = None
    contact_email: EmailStr | None = None
    hours_offered: int | None = Field(default=None, ge=1, le=1000, strict=True)

    @field_validator("contact_name", "contact_email", "neighborhood", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        return _blank_to_none(v)


class SubmissionUpdate(CamelModel):
    """Partial update.

    Only fields present in the request body are applied; ``model_fields_set``
    tells a field sent as null apart from one that was left out.
    """
    status: SubmissionStatus | None = None
    title: str | None = Field(default=None, min_length=3)
    description: str | None = Field(default=None, min_length=10)
    neighborhood: Neighborhood | None = None
    contact_name: str | None = None
    contact_email: EmailStr | None = None
    hours_offered: int | None = Field(default=None, ge=1, le=1000, strict=True)
    matched_with_id: str | None = None

    @field_validator("contact_name", "contact_email", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        return _blank_to_none(v)

    @field_validator("status", "title", "description")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("may not be null")
        return v

    def changes(self) -> dict:
        """Fields explicitly present in the patch, as column values."""
        return self.model_dump(mode="json", include=self.model_fields_set)


class SubmissionFilters(BaseModel):
    """Optional conjunction of equality filters for listing."""
    category: SubmissionCategory | None = None
    neighborhood: Neighborhood | None = None
    status: SubmissionStatus | None = None

    def is_empty(self) -> bool:
        return self.category is None and self.neighborhood is None and self.status is None


class SubmissionOut(CamelModel):
    """Submission as returned by the API."""
    id: str
    category: SubmissionCategory
    status: SubmissionStatus
    title: str
    description: str
    neighborhood: Neighborhood | None = None
    contact_name: str | None = None
    contact_email: str | None = None
    hours_offered: int | None = None
    matched_with_id: str | None = None
    created_at: datetime
    updated_at: datetime


class DashboardStats(CamelModel):
    """Aggregate dashboard figures."""
    total_participants: int = 0
    total_needs_reported: int = 0
    total_volunteers_offered: int = 0
    total_ideas_shared: int = 0
    total_hours_offered: int = 0
    estimated_citizen_hours: int = 0
    resolved_count: int = 0
    matched_count: int = 0


class MatchSuggestionOut(CamelModel):
    """One open need with its candidate offers."""
    need: SubmissionOut
    offers: list[SubmissionOut]


class MatchConfirmationOut(CamelModel):
    """Both sides of a confirmed match."""
    need: SubmissionOut
    offer: SubmissionOut


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: str | None = None
