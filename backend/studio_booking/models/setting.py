"""
Key/value store for studio-wide settings edited from the admin screen.

The cancellation policy is stored under ``cancellation_policy`` as
``{"rules": [{"days_before": 7, "fee_percent": 0}, ...]}``.
"""

from sqlalchemy import Column, String, JSON

from studio_booking.db.base import Base, TimestampMixin

CANCELLATION_POLICY_KEY = "cancellation_policy"


class Setting(Base, TimestampMixin):
    __tablename__ = "settings"

    key = Column(String(100), primary_key=True)
    value = Column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Setting(key={self.key})>"
