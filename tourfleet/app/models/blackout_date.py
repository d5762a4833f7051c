"""
Blackout Date database model.

Fleet-wide closed days (holidays, private events). No tour can be held on
an active blackout date.
"""

from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime
from sqlalchemy.sql import func
from tourfleet.app.db.session import Base


class BlackoutDate(Base):
    __tablename__ = "availability_blackout_dates"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    blackout_date = Column(Date, nullable=False, unique=True, index=True)
    reason = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<BlackoutDate(date={self.blackout_date}, active={self.is_active})>"
