"""Guest session router - lets anonymous visitors obtain an SOS-capable session"""

import logging
import secrets

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ...database import get_db
from .repository import GUEST_SESSION_TTL, GuestSessionRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Guest Sessions"])


class GuestSessionResponse(BaseModel):
    success: bool = True
    guestSessionId: str
    expiresInSeconds: int
    accessType: str = "guest"


@router.post("/guest-session", response_model=GuestSessionResponse, status_code=201)
async def create_guest_session(request: Request, db: Session = Depends(get_db)):
    """Start an anonymous session that can trigger SOS alerts"""
    session_id = secrets.token_hex(32)
    ip_address = request.client.host if request.client else "unknown"
    GuestSessionRepository.create_session(
        db, session_id, ip_address, request.headers.get("user-agent")
    )
    logger.info(f"New guest session created from {ip_address}")
    return GuestSessionResponse(
        guestSessionId=session_id,
        expiresInSeconds=int(GUEST_SESSION_TTL.total_seconds()),
    )
