"""Pydantic validation models for API requests."""

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from opsync.integrations.eitje import SUPPORTED_ENDPOINTS


def _check_endpoints(value: Optional[List[str]]) -> Optional[List[str]]:
    if value is None:
        return value
    if not value:
        raise ValueError("At least one endpoint is required")
    unknown = [e for e in value if e not in SUPPORTED_ENDPOINTS]
    if unknown:
        raise ValueError(f"Unsupported endpoints: {', '.join(unknown)}")
    return value


class BackfillStartRequest(BaseModel):
    """Validation for starting a chunked backfill."""

    start_date: date = Field(description="First day to backfill (YYYY-MM-DD)")
    end_date: date = Field(description="Last day to backfill, inclusive (YYYY-MM-DD)")
    endpoints: Optional[List[str]] = Field(
        default=None, description="Endpoints to sync (defaults to all supported)"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "start_date": "2024-01-01",
                "end_date": "2024-01-20",
                "endpoints": ["time_registration_shifts"],
            }
        }
    }

    @field_validator("endpoints")
    @classmethod
    def validate_endpoints(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _check_endpoints(v)

    @model_validator(mode="after")
    def validate_range(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        return self


class BackfillCleanupRequest(BaseModel):
    """Validation for a manual cleanup call."""

    current_progress_id: Optional[int] = Field(default=None, ge=1)


class BackfillResetRequest(BaseModel):
    """Validation for resetting chunk schedules."""

    progress_id: Optional[int] = Field(default=None, ge=1)


class GapRangeRequest(BaseModel):
    """Optional date range for gap detection and remediation."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    endpoints: Optional[List[str]] = None

    @field_validator("endpoints")
    @classmethod
    def validate_endpoints(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _check_endpoints(v)

    @model_validator(mode="after")
    def validate_range(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        return self


class SyncConfigUpdateRequest(BaseModel):
    """Operator update of the sync configuration. Omitted fields stay unchanged."""

    mode: Optional[Literal["manual", "incremental"]] = None
    enabled_endpoints: Optional[List[str]] = None
    incremental_interval_minutes: Optional[int] = Field(default=None, ge=1, le=1440)
    worker_interval_minutes: Optional[int] = Field(default=None, ge=1, le=1440)
    quiet_hours_start: Optional[int] = Field(default=None, ge=0, le=23)
    quiet_hours_end: Optional[int] = Field(default=None, ge=0, le=23)
    max_chunk_attempts: Optional[int] = Field(default=None, ge=1, le=20)

    model_config = {"extra": "forbid"}

    @field_validator("enabled_endpoints")
    @classmethod
    def validate_endpoints(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _check_endpoints(v)


class SyncHistoryQuery(BaseModel):
    """Query parameters for the sync history listing."""

    provider: Optional[str] = Field(default=None, max_length=50)
    limit: int = Field(default=50, ge=1, le=500)


class BackfillListQuery(BaseModel):
    """Query parameters for listing recent backfills."""

    limit: int = Field(default=20, ge=1, le=200)
