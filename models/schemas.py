"""Pydantic models for data validation and serialization."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

# bcrypt only hashes the first 72 bytes and refuses longer input
MAX_PASSWORD_BYTES = 72


class CallStatus(str, Enum):
    """Status values for call logs."""
    INITIATED = "initiated"
    RINGING = "ringing"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    MISSED = "missed"
    VOICEMAIL = "voicemail"
    FAILED = "failed"


class AppointmentStatus(str, Enum):
    """Status values for appointments."""
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class LeadStatus(str, Enum):
    """Pipeline stages for a lead."""
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    QUOTED = "quoted"
    WON = "won"
    LOST = "lost"


class LeadPriority(str, Enum):
    """Priority buckets derived from the lead score."""
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very_low"


class AfterHoursPolicy(str, Enum):
    """What the receptionist does with calls outside business hours."""
    VOICEMAIL = "voicemail"
    SMS = "sms"
    HANGUP = "hangup"


class ReminderType(str, Enum):
    """Appointment reminder lead times."""
    DAY_BEFORE = "24h"
    TWO_HOURS = "2h"
    ONE_HOUR = "1h"
    OTHER = "other"


class DayHours(BaseModel):
    """Opening hours for a single day ("HH:MM")."""
    open: Optional[str] = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    close: Optional[str] = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")


# Auth

def clean_password(value: str) -> str:
    """Strip surrounding whitespace and enforce the bcrypt-safe length."""
    value = value.strip()
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters")
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


class RegisterRequest(BaseModel):
    """Request body for account registration."""
    business_name: str = Field(..., min_length=1, max_length=100)
    business_type: str = Field(..., min_length=1, max_length=50)
    owner_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    phone: str
    website: Optional[str] = None
    address: Optional[str] = Field(None, max_length=500)
    services: list[str] = Field(default_factory=list)
    service_areas: list[str] = Field(default_factory=list)
    timezone: Optional[str] = None

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return clean_password(value)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return clean_password(value)


class AuthResponse(BaseModel):
    """Token response for register and login."""
    success: bool = True
    token: str
    token_type: str = "bearer"
    user: dict
    business: dict


# Business

class BusinessUpdateRequest(BaseModel):
    """Fields a tenant may change on its own profile."""
    business_name: Optional[str] = Field(None, min_length=1, max_length=100)
    business_type: Optional[str] = Field(None, min_length=1, max_length=50)
    services: Optional[list[str]] = None
    service_areas: Optional[list[str]] = None
    business_hours: Optional[dict[str, DayHours]] = None
    timezone: Optional[str] = None
    greeting_message: Optional[str] = Field(None, max_length=500)
    ai_tone: Optional[str] = Field(None, max_length=50)
    after_hours_policy: Optional[AfterHoursPolicy] = None
    notification_phone: Optional[str] = None
    sms_forwarding_enabled: Optional[bool] = None
    website: Optional[str] = None
    address: Optional[str] = Field(None, max_length=500)


class OnboardingRequest(BusinessUpdateRequest):
    """Onboarding submits the profile plus agent voice settings."""
    agent_name: str = Field("CloudGreet Receptionist", max_length=100)
    voice: str = Field("female", max_length=50)
    language: str = Field("en-US", max_length=10)


class AgentTone(str, Enum):
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    CASUAL = "casual"


class AgentSettingsUpdateRequest(BaseModel):
    """Receptionist settings an owner can change after onboarding."""
    agent_name: Optional[str] = Field(None, min_length=1, max_length=100)
    greeting_message: Optional[str] = Field(None, min_length=1, max_length=500)
    tone: Optional[AgentTone] = None
    voice: Optional[str] = Field(None, max_length=50)
    language: Optional[str] = Field(None, max_length=10)
    custom_instructions: Optional[str] = Field(None, max_length=2000)
    escalation_phone: Optional[str] = None


# Appointments

class AppointmentCreateRequest(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=100)
    customer_phone: str = Field(..., min_length=1)
    customer_email: Optional[EmailStr] = None
    service_type: str = Field(..., min_length=1)
    start_time: datetime
    duration_minutes: int = Field(60, ge=15, le=480)
    estimated_value: Optional[float] = Field(None, ge=0)
    address: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)


class AppointmentUpdateRequest(BaseModel):
    start_time: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, ge=15, le=480)
    status: Optional[AppointmentStatus] = None
    estimated_value: Optional[float] = Field(None, ge=0)
    address: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)


class AIBookingRequest(BaseModel):
    """Booking made by the receptionist agent during a call or SMS thread."""
    business_id: str
    call_id: Optional[str] = None
    customer_name: str = Field(..., min_length=1, max_length=100)
    customer_phone: str = Field(..., min_length=1)
    customer_address: Optional[str] = Field(None, max_length=500)
    service_type: Optional[str] = None
    scheduled_date: str
    scheduled_time: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)


class ReminderRequest(BaseModel):
    appointment_id: str
    reminder_type: ReminderType = ReminderType.DAY_BEFORE


# Leads

class LeadCreateRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    phone: str
    email: Optional[EmailStr] = None
    source: str = "manual"
    notes: Optional[str] = Field(None, max_length=1000)


class LeadStatusUpdateRequest(BaseModel):
    status: LeadStatus
    note: Optional[str] = Field(None, max_length=500)


class CallData(BaseModel):
    duration: int = 0
    service: Optional[str] = None
    urgency: Optional[str] = None
    budget: Optional[str] = None
    timeline: Optional[str] = None


class CustomerData(BaseModel):
    name: Optional[str] = None
    phone: str
    location: Optional[str] = None
    is_returning: bool = False
    referral_source: Optional[str] = None


class AppointmentData(BaseModel):
    scheduled: bool = False
    estimated_value: Optional[float] = None
    service_type: Optional[str] = None


class LeadScoreRequest(BaseModel):
    lead_id: Optional[str] = None
    call_data: CallData = Field(default_factory=CallData)
    customer_data: CustomerData
    appointment_data: AppointmentData = Field(default_factory=AppointmentData)


class LeadScore(BaseModel):
    urgency: int = Field(0, ge=0, le=25)
    value: int = Field(0, ge=0, le=25)
    fit: int = Field(0, ge=0, le=25)
    engagement: int = Field(0, ge=0, le=25)
    total: int = Field(0, ge=0, le=100)
    reasoning: str = ""


# Quotes

class QuoteUrgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EMERGENCY = "emergency"


class QuoteJobDetails(BaseModel):
    square_footage: Optional[float] = Field(None, ge=1)
    system_type: Optional[str] = None
    issue_description: str = Field(..., min_length=1, max_length=2000)
    urgency: QuoteUrgency = QuoteUrgency.MEDIUM
    location: Optional[str] = Field(None, max_length=500)
    additional_notes: Optional[str] = Field(None, max_length=1000)


class QuoteRequest(BaseModel):
    service_type: str = Field(..., min_length=1, max_length=100)
    customer_name: str = Field(..., min_length=1, max_length=100)
    customer_phone: str = Field(..., min_length=1)
    customer_email: Optional[EmailStr] = None
    job_details: QuoteJobDetails


# Calls

class MissedRecoveryRequest(BaseModel):
    call_id: str


# Billing

class PerBookingChargeRequest(BaseModel):
    appointment_id: str


class CheckoutResponse(BaseModel):
    url: str
    session_id: str


# Misc

class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    environment: str
    timestamp: datetime


class SuccessResponse(BaseModel):
    success: bool = True
    message: str = ""
    data: Optional[Any] = None
