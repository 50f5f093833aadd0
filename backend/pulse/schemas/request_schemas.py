"""
Request validation schemas for the Standup Pulse API.

These schemas validate request bodies to ensure:
- Type safety
- Value constraints
- Blank or sentinel blockers are stored consistently
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import date, datetime


class EntrySubmission(BaseModel):
    """A daily standup submission. Re-submitting for the same day overwrites."""

    person_id: str = Field(..., min_length=1, max_length=64)
    person_name: str = Field(..., min_length=1, max_length=255)
    workspace_id: Optional[str] = Field(None, max_length=64, description="Defaults to DEFAULT_WORKSPACE_ID")
    entry_date: Optional[date] = Field(None, description="Local calendar day; defaults to today")
    yesterday: str = ""
    today: str = ""
    blockers: str = ""
    notes: str = ""
    yesterday_hours_estimate: Optional[float] = Field(None, ge=0, le=24)
    today_hours_estimate: Optional[float] = Field(None, ge=0, le=24)
    sentiment_eligible: bool = True
    submitted_at: Optional[datetime] = Field(None, description="UTC submission time; defaults to now")

    @field_validator("yesterday", "today", "blockers", "notes", mode="before")
    @classmethod
    def strip_text(cls, v):
        if v is None:
            return ""
        return str(v).strip()


class DismissAlertRequest(BaseModel):
    """Operator dismissal of an active alert"""
    resolution: Optional[str] = Field(None, max_length=1000)
