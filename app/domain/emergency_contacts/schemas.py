"""Emergency contact schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_e164_phone, validate_email, validate_relationship


def _require_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Name is required")
    return v


class EmergencyContactCreate(BaseModel):
    """Schema for creating an emergency contact"""

    name: str = Field(..., min_length=1, max_length=100)
    email: str
    relationship: Optional[str] = "other"
    phoneNumber: Optional[str] = None
    priority: int = Field(0, ge=0, le=10)
    notes: Optional[str] = Field(None, max_length=500)
    consentGiven: bool = False

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _require_name(v)

    @field_validator("phoneNumber")
    @classmethod
    def validate_phone(cls, v):
        return validate_e164_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email_address(cls, v):
        if not v or not v.strip():
            raise ValueError("Email is required")
        return validate_email(v)

    @field_validator("relationship")
    @classmethod
    def validate_relationship_value(cls, v):
        return validate_relationship(v)


class EmergencyContactUpdate(BaseModel):
    """Schema for updating an emergency contact"""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = None
    relationship: Optional[str] = None
    phoneNumber: Optional[str] = None
    priority: Optional[int] = Field(None, ge=0, le=10)
    notes: Optional[str] = Field(None, max_length=500)
    isActive: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if v is None:
            return v
        return _require_name(v)

    @field_validator("phoneNumber")
    @classmethod
    def validate_phone(cls, v):
        return validate_e164_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email_address(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Email is required")
        return validate_email(v)

    @field_validator("relationship")
    @classmethod
    def validate_relationship_value(cls, v):
        if v is None:
            return v
        return validate_relationship(v)


class ConsentUpdate(BaseModel):
    consentGiven: bool


class EmergencyContactResponse(BaseModel):
    """Schema for emergency contact response"""

    id: int
    name: str
    email: str
    relationship: str
    phoneNumber: Optional[str]
    priority: int
    notes: Optional[str]
    isActive: bool
    consentGiven: bool
    consentGivenAt: Optional[datetime] = None
    verificationStatus: str
    eligibleForSOS: bool
    created_at: Optional[datetime] = None
