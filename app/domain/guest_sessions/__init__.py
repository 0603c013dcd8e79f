"""Guest sessions domain - anonymous access for the SOS quick trigger"""

from .router import router

__all__ = ["router"]
