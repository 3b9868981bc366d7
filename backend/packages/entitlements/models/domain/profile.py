"""
Domain model for the user profile document.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class UserProfile(BaseModel):
    """
    Dashboard-facing profile document.

    ``subscription`` replicates the relational subscription row, ``usage``
    is the display cache (period, counters, active AI searches) and
    ``usage_history`` holds archived monthly periods, newest first.
    """

    id: int
    user_id: str
    subscription: dict[str, Any] = Field(default_factory=dict)
    usage: dict[str, Any] = Field(default_factory=dict)
    usage_history: list[dict[str, Any]] = Field(default_factory=list)
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def cached_active_searches(self) -> Optional[int]:
        value = self.usage.get("active_ai_searches")
        return int(value) if value is not None else None
