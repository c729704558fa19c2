from .schemas import (
    CallStatus,
    AppointmentStatus,
    LeadStatus,
    LeadPriority,
    AfterHoursPolicy,
    ReminderType,
    LeadScore,
    HealthResponse,
)

__all__ = [
    "CallStatus",
    "AppointmentStatus",
    "LeadStatus",
    "LeadPriority",
    "AfterHoursPolicy",
    "ReminderType",
    "LeadScore",
    "HealthResponse",
]
