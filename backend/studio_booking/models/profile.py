"""
Customer / admin profile.

Holds the buyer data the invoicing steps need and the address e-mails go to.
Credentials live with the identity provider, not here.
"""

from sqlalchemy import Column, String, CheckConstraint
from sqlalchemy.orm import relationship

from studio_booking.db.base import Base, TimestampMixin


class Profile(Base, TimestampMixin):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    company_name = Column(String(255), nullable=True)
    tax_number = Column(String(50), nullable=True)
    billing_zip = Column(String(20), nullable=True)
    billing_city = Column(String(100), nullable=True)
    billing_street = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="customer")

    bookings = relationship("Booking", back_populates="profile")

    __table_args__ = (
        CheckConstraint("role IN ('customer', 'admin')", name="check_profile_role"),
    )

    @property
    def buyer_name(self) -> str:
        return self.company_name or self.full_name or "Vevő"

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, email={self.email}, role={self.role})>"
