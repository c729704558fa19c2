"""Job estimates from a business's pricing rules."""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from config import get_settings
from models.schemas import QuoteRequest
from services.openai_client import get_openai_client
from services.phone import validate_and_format_phone
from services.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

QUOTE_TTL = timedelta(days=30)

URGENCY_MULTIPLIERS = {
    "low": 0.9,
    "medium": 1.0,
    "high": 1.2,
    "emergency": 1.5,
}

# Labour hours assumed for per_hour rules
URGENCY_HOURS = {
    "emergency": 4,
    "high": 3,
}
DEFAULT_HOURS = 2

QUOTE_SYSTEM_PROMPT = (
    "You are a professional AI receptionist for service businesses. Generate detailed, "
    "professional quotes that build trust and clearly explain the work to be performed."
)

DEFAULT_RECOMMENDATIONS = "Please contact us for personalized recommendations."


class QuoteError(Exception):
    """Raised for quote requests that can't be priced."""

    def __init__(self, message: str, status_code: int = 400):
        self.status_code = status_code
        super().__init__(message)


def _as_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def evaluate_condition(job_details: dict, condition: dict) -> bool:
    """Whether a pricing-rule condition matches the job."""
    value = job_details.get(condition.get("field"))
    operator = condition.get("operator")
    expected = condition.get("value")

    if operator == "equals":
        return value == expected
    if operator in ("greater_than", "less_than"):
        left, right = _as_float(value), _as_float(expected)
        if left is None or right is None:
            return False
        return left > right if operator == "greater_than" else left < right
    if operator == "contains":
        return bool(value) and str(expected or "").lower() in str(value).lower()
    return False


def _rule_price(rule: dict, job_details: dict) -> float:
    price = rule.get("base_price") or 0
    unit_price = rule.get("unit_price") or 0

    if rule.get("unit_type") == "per_sqft" and job_details.get("square_footage"):
        price = unit_price * job_details["square_footage"]
    elif rule.get("unit_type") == "per_hour":
        price = unit_price * URGENCY_HOURS.get(job_details.get("urgency"), DEFAULT_HOURS)

    for condition in rule.get("conditions") or []:
        if condition.get("multiplier") and evaluate_condition(job_details, condition):
            price *= condition["multiplier"]

    if rule.get("min_price") and price < rule["min_price"]:
        price = rule["min_price"]
    if rule.get("max_price") and price > rule["max_price"]:
        price = rule["max_price"]

    return price


def calculate_estimate(job_details: dict, pricing_rules: list[dict]) -> dict:
    """
    Price a job against the business's active pricing rules.

    Each rule starts from its base price, or unit price times square footage
    (per_sqft) or times labour hours (per_hour). Matching conditions multiply
    it, then the rule's min/max clamp it. Rules that come to zero are left out
    of the breakdown. The sum is scaled by the urgency multiplier and rounded
    to whole dollars.

    Returns:
        {"total_price": int, "breakdown": [...], "urgency_multiplier": float}
    """
    total = 0.0
    breakdown = []

    for rule in pricing_rules:
        price = _rule_price(rule, job_details)
        if price > 0:
            total += price
            breakdown.append({
                "rule_name": rule.get("name"),
                "description": rule.get("description"),
                "price": price,
                "unit_type": rule.get("unit_type"),
            })

    multiplier = URGENCY_MULTIPLIERS.get(job_details.get("urgency"), 1.0)
    total *= multiplier

    return {
        "total_price": int(math.floor(total + 0.5)),
        "breakdown": breakdown,
        "urgency_multiplier": multiplier,
    }


def _quote_prompt(request: QuoteRequest, estimate: dict) -> str:
    details = request.job_details
    applied = "\n".join(f"- {item['rule_name']}: ${item['price']:g}" for item in estimate["breakdown"])
    return f"""Generate a detailed quote description and recommendations based on the following job details:

Service Type: {request.service_type}
Customer: {request.customer_name}
Issue: {details.issue_description}
Square Footage: {details.square_footage or 'Not specified'}
Urgency: {details.urgency.value}
Location: {details.location or 'Not specified'}
Additional Notes: {details.additional_notes or 'None'}

Estimated Price: ${estimate['total_price']}

Pricing Rules Applied:
{applied or '- None'}

Please provide:
1. A professional, detailed description of the work to be performed
2. Specific recommendations for the customer
3. Timeline expectations
4. Any additional services that might be beneficial

Keep the tone professional but friendly, and be specific about what the estimate includes."""


def split_quote_text(text: str) -> tuple[str, str]:
    """First paragraph is the description; the rest are recommendations."""
    text = (text or "").strip()
    parts = text.split("\n\n")
    description = parts[0].strip() or text
    recommendations = "\n\n".join(parts[1:]).strip() or DEFAULT_RECOMMENDATIONS
    return description, recommendations


class QuoteService:
    """Prices jobs and stores the resulting quotes."""

    def __init__(self, db: SupabaseClient):
        self.db = db

    async def describe(self, request: QuoteRequest, estimate: dict) -> tuple[str, str]:
        """Model-written description and recommendations, with a generic fallback."""
        try:
            client = get_openai_client()
            response = await client.chat.completions.create(
                model=get_settings().openai_model,
                messages=[
                    {"role": "system", "content": QUOTE_SYSTEM_PROMPT},
                    {"role": "user", "content": _quote_prompt(request, estimate)},
                ],
                max_tokens=500,
                temperature=0.7,
            )
            content = response.choices[0].message.content
            if content and content.strip():
                return split_quote_text(content)
            logger.warning("Empty quote description from model, using fallback")
        except Exception as e:
            logger.error(f"AI quote description failed: {e}")

        return (
            f"Based on the information provided, we can perform {request.service_type} services "
            "for your property. Our estimate includes professional service and quality materials.",
            "We recommend scheduling a consultation to discuss your specific needs "
            "and provide a more detailed assessment.",
        )

    async def generate(self, business: dict, request: QuoteRequest) -> dict:
        customer_phone = validate_and_format_phone(request.customer_phone)
        if not customer_phone:
            raise QuoteError("Invalid customer phone number")

        service_type = request.service_type.strip().lower()
        rules = await self.db.get_pricing_rules(business["id"], service_type)
        job_details = request.job_details.model_dump(mode="json")
        estimate = calculate_estimate(job_details, rules)

        description, recommendations = await self.describe(request, estimate)

        quote = await self.db.create_quote({
            "business_id": business["id"],
            "customer_name": request.customer_name.strip(),
            "customer_phone": customer_phone,
            "customer_email": request.customer_email,
            "service_type": service_type,
            "job_details": job_details,
            "estimated_price": estimate["total_price"],
            "pricing_breakdown": estimate["breakdown"],
            "ai_generated_description": description,
            "ai_recommendations": recommendations,
            "status": "pending",
            "expires_at": (datetime.now(timezone.utc) + QUOTE_TTL).isoformat(),
        })

        logger.info(
            f"Generated quote {quote.get('id')} for business {business['id']}: "
            f"${estimate['total_price']} ({service_type}, {len(rules)} rules)"
        )
        return {"quote": quote, "estimate": estimate}
