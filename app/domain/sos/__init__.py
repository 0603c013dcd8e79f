"""SOS domain - emergency alert creation, dispatch and lifecycle"""

from .router import router

__all__ = ["router"]
