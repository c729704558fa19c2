"""Prompts and canned lines for the CloudGreet receptionist."""

from services.business_hours import describe_hours

SYSTEM_PROMPT = """You are the AI receptionist for a small service business. \
You answer the phone (or text messages) on the business's behalf.

Your personality:
- Warm, professional and efficient
- Concise - this is a phone call, keep responses to one or two sentences
- Ask one question at a time
- Never make up prices, policies or availability

## TOOL USAGE

You have tools to act for the business. Use them when the caller's intent is clear.

WHEN TO CHECK AVAILABILITY (use check_availability):
- Caller asks when someone can come out, or asks about a specific day
→ Offer at most three of the returned times.

WHEN TO BOOK (use book_appointment):
- Caller has agreed to a time AND you have their name, phone number and the service they need
→ Read back the date and time to confirm once it is booked.
- Dates are YYYY-MM-DD and times are 24-hour HH:MM in the business's timezone.

WHEN TO TAKE A MESSAGE (use take_message):
- Caller wants to speak to the owner, has a question you can't answer, or doesn't want to book
→ Tell them someone will get back to them.

WHEN TO TRANSFER (use transfer_to_human):
- Caller insists on speaking to a person, or describes an emergency

WHEN TO END THE CALL (use end_call):
- The caller says goodbye or has nothing else they need
→ Say a short goodbye in the same reply.

IMPORTANT: Keep your responses SHORT and conversational. Avoid lists. One thought at a time."""


SMS_INSTRUCTIONS = """You are replying by text message, not on a call.
- Keep every reply under 160 characters.
- Do not use emojis or markdown.
- End every reply with: "Reply STOP to opt out; HELP for help."
- end_call and transfer_to_human are not available over text."""

SMS_FOOTER = "Reply STOP to opt out; HELP for help."

FALLBACK_REPLY = (
    "I'm sorry, I'm having trouble right now. "
    "Let me have someone from the team call you back shortly."
)

UNAVAILABLE_MESSAGE = (
    "We're sorry, this number is not currently in service. Please try again later. Goodbye."
)


def get_business_context_prompt(business: dict, agent: dict | None = None) -> str:
    """
    Describe the business for the system prompt.

    Args:
        business: The businesses row
        agent: The active ai_agents row, whose tone wins over the business default

    Returns:
        A formatted string with business context
    """
    context_parts = [
        f"Business name: {business.get('business_name', 'the business')}",
        f"Business type: {business.get('business_type') or 'service business'}",
    ]

    services = business.get("services") or []
    if services:
        context_parts.append("Services offered:\n" + "\n".join(f"- {s}" for s in services))
    else:
        context_parts.append("Services offered: ask the caller what they need.")

    areas = business.get("service_areas") or []
    if areas:
        context_parts.append(f"Service areas: {', '.join(areas)}")

    context_parts.append(f"Business hours: {describe_hours(business.get('business_hours'))}")
    context_parts.append(f"Timezone: {business.get('timezone') or 'America/New_York'}")
    tone = (agent or {}).get("tone") or business.get("ai_tone") or "professional"
    context_parts.append(f"Tone: {tone}")

    if business.get("greeting_message"):
        context_parts.append(f"The call was opened with: \"{business['greeting_message']}\"")

    return "\n\n".join(context_parts)


def build_system_prompt(
    business: dict,
    channel: str = "voice",
    today: str | None = None,
    agent: dict | None = None
) -> str:
    prompt = f"{SYSTEM_PROMPT}\n\n--- BUSINESS CONTEXT ---\n{get_business_context_prompt(business, agent)}"
    if agent and agent.get("custom_instructions"):
        prompt += f"\n\n--- OWNER INSTRUCTIONS ---\n{agent['custom_instructions']}"
    if today:
        prompt += f"\n\nToday's date is {today}."
    if channel == "sms":
        prompt += f"\n\n--- TEXT MESSAGE RULES ---\n{SMS_INSTRUCTIONS}"
    return prompt


def get_greeting(business: dict, agent: dict | None = None) -> str:
    """The first thing said when the call connects."""
    if agent and agent.get("greeting_message"):
        return agent["greeting_message"]
    if business.get("greeting_message"):
        return business["greeting_message"]
    return f"Thank you for calling {business.get('business_name', 'us')}. How can I help you today?"


def get_after_hours_message(business: dict, policy: str) -> str:
    """
    What to say when the call comes in outside business hours.

    Args:
        business: The businesses row
        policy: voicemail, sms or hangup

    Returns:
        The message string
    """
    name = business.get("business_name", "us")
    if policy == "voicemail":
        return (
            f"Thank you for calling {name}. We're currently closed. "
            "Please leave your name, number and a brief message after the tone and we'll call you back."
        )
    if policy == "sms":
        return (
            f"Thank you for calling {name}. We're currently closed. "
            "We've sent you a text message so you can reach us. Goodbye."
        )
    return f"Thank you for calling {name}. We're currently closed. Please call back during business hours. Goodbye."


def get_after_hours_sms(business: dict) -> str:
    return (
        f"Thanks for calling {business.get('business_name', 'us')}! We're closed right now "
        f"({describe_hours(business.get('business_hours'))}). Text us here and we'll get back to you. "
        f"{SMS_FOOTER}"
    )


def get_help_message(business: dict) -> str:
    """Reply to the HELP keyword."""
    contact = business.get("phone") or business.get("phone_number") or ""
    return (
        f"{business.get('business_name', 'CloudGreet')}: {describe_hours(business.get('business_hours'))}. "
        f"Call {contact} for help. Msg&data rates may apply. Reply STOP to opt out."
    )


def get_transfer_message() -> str:
    return "Okay, let me connect you with someone now. Please hold."
