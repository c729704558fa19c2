from .supabase_client import SupabaseClient, get_supabase_client
from .telnyx_service import TelnyxService, TelnyxError, get_telnyx_service
from .scheduler import JobScheduler, get_job_scheduler

__all__ = [
    "SupabaseClient",
    "get_supabase_client",
    "TelnyxService",
    "TelnyxError",
    "get_telnyx_service",
    "JobScheduler",
    "get_job_scheduler",
]
