"""
Holiday calendar schemas
"""
from datetime import date as date_type, datetime
from typing import Optional
from pydantic import BaseModel, Field, field_serializer, ConfigDict
from app.utils.datetime_utils import iso_local


class HolidayCreate(BaseModel):
    """Schema for creating a holiday"""
    year: int = Field(..., description="Year (e.g., 2026)")
    date: date_type = Field(..., description="Holiday date")
    name: str = Field(..., description="Holiday name")
    is_optional: bool = Field(False, description="Optional holiday (still non-working for leave counting)")
    active: bool = Field(True, description="Whether the holiday is active")


class HolidayUpdate(BaseModel):
    """Schema for updating a holiday"""
    name: Optional[str] = Field(None, description="Holiday name")
    is_optional: Optional[bool] = Field(None, description="Optional holiday flag")
    active: Optional[bool] = Field(None, description="Whether the holiday is active")


class HolidayOut(BaseModel):
    """Schema for holiday output. Datetimes in the configured local zone."""
    id: int
    year: int
    date: date_type
    name: str
    is_optional: bool
    active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at", "updated_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt):
        return iso_local(dt)
