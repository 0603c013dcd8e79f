"""Scheduling domain - counselor availability and bookable time slots"""

from .router import router

__all__ = ["router"]
