from typing import Optional

import httpx

from app.config import Settings, settings
from app.logging_config import get_logger
from app.services.result import ErrorCode, Result

logger = get_logger("calendar_service")


def build_event_payload(
    summary: str,
    start_epoch: int,
    end_epoch: int,
    *,
    timezone_name: str,
    reminder_minutes: int,
    description: Optional[str] = None,
) -> dict:
    payload = {
        "summary": summary,
        "start_time": {"timestamp": str(start_epoch), "timezone": timezone_name},
        "end_time": {"timestamp": str(end_epoch), "timezone": timezone_name},
        "reminders": [{"minutes": reminder_minutes}],
    }
    if description:
        payload["description"] = description
    return payload


def create_calendar_event(
    access_token: str,
    summary: str,
    start_epoch: int,
    end_epoch: int,
    *,
    description: Optional[str] = None,
    config: Settings = settings,
) -> Result[bool]:
    """Create an event on the bot's calendar. HTTP 200 is the only success; no retries."""
    url = f"{config.lark_base_url.rstrip('/')}/calendar/v4/calendars/{config.calendar_id}/events"
    payload = build_event_payload(
        summary,
        start_epoch,
        end_epoch,
        timezone_name=config.calendar_timezone,
        reminder_minutes=config.calendar_reminder_minutes,
        description=description,
    )

    try:
        with httpx.Client(timeout=config.http_timeout_seconds) as client:
            response = client.post(
                url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json; charset=utf-8",
                },
                json=payload,
            )
    except httpx.HTTPError as e:
        logger.error(f"Calendar request failed: {e}")
        return Result.failure(f"Calendar request failed: {e}", ErrorCode.SCHEDULING_ERROR, {"error": str(e)})

    if response.status_code != 200:
        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text[:1000]}
        logger.warning(
            "Calendar event creation rejected",
            extra={"context": {"status": response.status_code, "body": body}},
        )
        return Result.failure(
            f"Calendar API returned {response.status_code}",
            ErrorCode.SCHEDULING_ERROR,
            {"status": response.status_code, "body": body},
        )

    logger.info("Calendar event created", extra={"context": {"summary": summary, "start": start_epoch}})
    return Result.success(True)
