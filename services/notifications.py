"""Owner notifications: dashboard feed, SMS and email."""

import logging
from typing import Optional

from services.email_service import get_email_service
from services.supabase_client import SupabaseClient
from services.telnyx_service import TelnyxService

logger = logging.getLogger(__name__)


async def notify_owner(
    db: SupabaseClient,
    business: dict,
    notification_type: str,
    title: str,
    message: str,
    priority: str = "normal",
    telnyx: Optional[TelnyxService] = None,
    sms: bool = False,
    email: bool = False
) -> dict:
    """
    Record a notification for a business owner and optionally push it.

    The dashboard row is always written. SMS goes to the business's
    notification phone from its assigned number, email to the business
    email. Push failures are logged, never raised.

    Returns:
        The stored notification row
    """
    notification = await db.create_notification({
        "business_id": business["id"],
        "type": notification_type,
        "title": title,
        "message": message,
        "priority": priority,
    })

    if sms and telnyx:
        to_number = business.get("notification_phone") or business.get("phone")
        from_number = business.get("phone_number")
        if to_number and from_number:
            try:
                await telnyx.send_sms(from_number, to_number, f"{title}\n{message}")
            except Exception as e:
                logger.warning(f"Owner SMS notification failed for business {business['id']}: {e}")
        else:
            logger.warning(f"No SMS route for owner notification of business {business['id']}")

    if email and business.get("email"):
        try:
            get_email_service().send_notification(business["email"], title, message)
        except Exception as e:
            logger.warning(f"Owner email notification failed for business {business['id']}: {e}")

    logger.info(f"Notified owner of business {business['id']}: {title}")
    return notification
