"""
Domain models for weekly AI discovery tracking and search slots.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class WeekWindow(BaseModel):
    """A half-open 7-day window ``[week_start, week_end)``."""

    week_start: datetime
    week_end: datetime
    week_year: int
    week_number: int

    def contains(self, moment: datetime) -> bool:
        return self.week_start <= moment < self.week_end


class WeeklyWindow(BaseModel):
    """Persisted weekly counter."""

    id: int
    user_id: str
    week_start: datetime
    week_end: datetime
    week_year: int
    week_number: int
    jobs_found_this_week: int = 0

    class Config:
        from_attributes = True


class WeeklyStats(BaseModel):
    jobs_found_this_week: int
    week_start: datetime
    week_end: datetime
    week_number: int
    week_year: int
    weekly_limit: int
    remaining_this_week: int  # -1 when unlimited
    is_limit_reached: bool


class SearchRunInput(BaseModel):
    search_id: Optional[str] = None
    search_name: Optional[str] = None
    resume_name: Optional[str] = None


class SearchRun(BaseModel):
    id: int
    window_id: int
    search_id: Optional[str] = None
    search_name: Optional[str] = None
    resume_name: Optional[str] = None
    run_date: datetime
    jobs_found: int
    search_deleted: bool = False
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WeeklyRecordResult(BaseModel):
    """Outcome of recording discovered jobs against the weekly window."""

    added: int
    dropped: int = 0
    jobs_found_this_week: int
    limit_reached: bool


class WeeklyHistoryEntry(BaseModel):
    week_start: datetime
    week_end: datetime
    week_year: int
    week_number: int
    jobs_found: int
    runs: list[SearchRun] = []


class WeeklySummary(BaseModel):
    current: WeeklyStats
    total_jobs_found: int
    weeks_tracked: int
    average_per_week: float
    recent_runs: list[SearchRun]


class SlotCheck(BaseModel):
    """Active AI search slot availability, counted live."""

    allowed: bool
    current: int
    limit: int
    remaining: int


class AISearch(BaseModel):
    id: int
    user_id: str
    name: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AISearchCreateModel(BaseModel):
    user_id: str
    name: str
    status: str
