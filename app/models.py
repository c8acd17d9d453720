"""Pydantic models for API requests and responses."""
from typing import List
from pydantic import BaseModel, ConfigDict, Field
from incidents.models import Incident


class IncidentResponse(BaseModel):
    """Response model for a single incident."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    description: str
    category: str
    severity: str
    status: str
    reported_at: str = Field(..., alias="reportedAt")

    @classmethod
    def from_incident(cls, incident: Incident) -> "IncidentResponse":
        return cls.model_validate(incident.to_dict())


class StatusChangeRequest(BaseModel):
    """Request model for the status change endpoint."""
    status: str = Field(..., description="Requested next status", examples=["INVESTIGATING"])


class BulkUploadResponse(BaseModel):
    """Response model for bulk CSV upload."""
    model_config = ConfigDict(populate_by_name=True)

    total_rows: int = Field(..., alias="totalRows")
    created: int
    skipped: int


class InvalidTransitionDetail(BaseModel):
    """Error body for a rejected status change."""
    model_config = ConfigDict(populate_by_name=True)

    error: str
    current_status: str = Field(..., alias="currentStatus")
    allowed: List[str]


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str
