from studio_booking.models.profile import Profile
from studio_booking.models.booking import Booking, BookingExtra
from studio_booking.models.setting import Setting

__all__ = ["Profile", "Booking", "BookingExtra", "Setting"]
