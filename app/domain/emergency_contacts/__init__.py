"""Emergency contacts domain - a user's consented SOS recipients"""

from .router import router

__all__ = ["router"]
