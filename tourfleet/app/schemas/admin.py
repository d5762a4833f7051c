"""
Admin operations schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional


class SweepRequest(BaseModel):
    """Optional cut-off; defaults to now."""
    as_of: Optional[datetime] = None


class SweepResponse(BaseModel):
    released_blocks: int
    swept_at: datetime


class ReconcileRequest(BaseModel):
    """Booking ids the storefronts consider confirmed."""
    booking_ids: List[int] = Field(..., min_length=1)


class ReconcileResponse(BaseModel):
    checked: int
    consistent: bool
