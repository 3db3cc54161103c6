"""Database models."""

from app.models.activity import ActivityLog
from app.models.booking import Booking
from app.models.payment import UsedTransactionHash
from app.models.stay import Stay
from app.models.user import User

__all__ = [
    # User
    "User",
    # Stay
    "Stay",
    # Booking
    "Booking",
    "ActivityLog",
    # Payment
    "UsedTransactionHash",
]
