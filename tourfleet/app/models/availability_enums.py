"""
Availability-related enumerations.
"""

import enum


class BlockType(str, enum.Enum):
    """Availability block type enumeration."""
    BOOKING = "BOOKING"  # Confirmed booking, linked to booking_id
    HOLD = "HOLD"  # Tentative, expires at hold_expires_at
    MAINTENANCE = "MAINTENANCE"  # Fleet admin blackout window
    BUFFER = "BUFFER"  # Prep time around a booking, linked to booking_id


class SharingMode(str, enum.Enum):
    """Vehicle brand scope enumeration."""
    DEDICATED = "DEDICATED"  # Serves its home brand only
    SHARED = "SHARED"  # Pooled across all brands


class AllocationState(str, enum.Enum):
    """Allocation attempt state enumeration."""
    REQUESTED = "REQUESTED"
    HELD = "HELD"
    COMMITTED = "COMMITTED"  # Terminal
    RELEASED = "RELEASED"  # Terminal
    REJECTED = "REJECTED"  # Terminal
