"""Database models."""

from medsaga.models.appointments import appointments
from medsaga.models.country_appointments import confirmed_appointments
from medsaga.models.users import users

__all__ = [
    "appointments",
    "confirmed_appointments",
    "users",
]
