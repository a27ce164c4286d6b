"""
Prompt text shared by the plan and gift generation calls
"""

from app.schemas.event import EventCreate, parse_event_datetime

PLAN_SYSTEM_INSTRUCTION = (
    "You are an expert event planner. Create a clear, step-by-step plan for the "
    "event described by the user, covering preparation, schedule and the day itself. "
    "Format the answer in markdown with short headers and bullet points."
)

GIFTS_SYSTEM_INSTRUCTION = (
    "You are an expert gift advisor. Based on the event and the recipient description, "
    "suggest exactly five thoughtful gift ideas. Return them as a markdown bullet list, "
    "one gift per line with a short reason, and nothing else."
)


def format_event_date(value: str) -> str:
    """'2025-06-01T18:00' -> 'Sunday, June 1, 2025 at 6:00 PM'"""
    try:
        moment = parse_event_datetime(value)
    except ValueError:
        return value
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return (
        f"{moment.strftime('%A')}, {moment.strftime('%B')} {moment.day}, {moment.year} "
        f"at {hour}:{moment.minute:02d} {suffix}"
    )


def build_event_prompt(event: EventCreate) -> str:
    return (
        f"Event name: {event.name}\n"
        f"Event type: {event.type.value}\n"
        f"Date: {format_event_date(event.datetime)}\n"
        f"Recipient: {event.recipient}"
    )
