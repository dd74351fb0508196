import json
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import ValidationError

from app.config import Settings, settings
from app.logging_config import get_logger
from app.schemas.decision import (
    DEFAULT_QUADRANT,
    ModelDecisionPayload,
    PlainReply,
    ScheduledTask,
    TaskDecision,
    parse_quadrant,
)
from app.services.llm import LLMProvider
from app.services.result import ErrorCode, Result

logger = get_logger("classifier_service")

TOO_SHORT_REPLY = "text too short to analyze"
CLASSIFY_TEMPERATURE = 0.1
CLASSIFY_MAX_TOKENS = 400

CIVIL_TIME_FORMATS = (
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y/%m/%d %H:%M",
)

CODE_FENCE_PATTERN = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)

SYSTEM_PROMPT = (
    "You are a personal scheduling assistant inside a chat app. "
    "Decide whether the user's message describes something they need to do at a specific time "
    "(a task to put on their calendar) or is just a casual remark.\n"
    "The current local time is {now} ({weekday}). Resolve relative dates such as "
    '"tomorrow" or "next Friday" against it.\n'
    "Return ONLY a JSON object, no Markdown, no commentary.\n"
    "For a task:\n"
    '{{"is_task": true, "summary": "<short title>", "start_time": "YYYY-MM-DD HH:MM", '
    '"end_time": "YYYY-MM-DD HH:MM", "quadrant": "<quadrant>"}}\n'
    "where quadrant is one of: urgent_important, important_not_urgent, "
    "urgent_not_important, not_urgent_not_important. Omit end_time if no duration is given.\n"
    "Otherwise:\n"
    '{{"is_task": false, "reply": "<a short friendly reply>"}}\n'
    "Answer in the language the user wrote in."
)


def civil_timezone(offset_hours: float) -> timezone:
    return timezone(timedelta(hours=offset_hours))


def build_classification_messages(text: str, now_civil: datetime) -> list[dict]:
    system_prompt = SYSTEM_PROMPT.format(
        now=now_civil.strftime("%Y-%m-%d %H:%M"),
        weekday=now_civil.strftime("%A"),
    )
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": text},
    ]


def strip_code_fences(content: str) -> str:
    """Remove a Markdown code fence wrapping the whole model output."""
    cleaned = (content or "").strip()
    match = CODE_FENCE_PATTERN.match(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def extract_json_object(content: str) -> Optional[dict]:
    cleaned = strip_code_fences(content)
    payload = None
    try:
        payload = json.loads(cleaned)
    except Exception:
        match = re.search(r"\{.*\}", cleaned, re.DOTALL)
        if match:
            try:
                payload = json.loads(match.group(0))
            except Exception:
                payload = None
    return payload if isinstance(payload, dict) else None


def parse_civil_time(value: Optional[str], tz: timezone) -> Optional[datetime]:
    """Parse a model timestamp. Naive values are taken as civil time in tz."""
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    parsed = None
    for fmt in CIVIL_TIME_FORMATS:
        try:
            parsed = datetime.strptime(raw, fmt)
            break
        except ValueError:
            continue
    if parsed is None:
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=tz)
    return parsed.astimezone(tz)


def parse_model_output(
    content: str,
    tz: timezone,
    default_duration: timedelta = timedelta(hours=1),
) -> Result[TaskDecision]:
    data = extract_json_object(content)
    if data is None:
        return Result.failure(
            "Model output is not a JSON object",
            ErrorCode.MALFORMED_MODEL_OUTPUT,
            {"raw": (content or "")[:500]},
        )

    try:
        payload = ModelDecisionPayload(**data)
    except ValidationError as e:
        return Result.failure(
            f"Model output has the wrong shape: {e.errors()[0].get('msg')}",
            ErrorCode.MALFORMED_MODEL_OUTPUT,
            {"raw": (content or "")[:500]},
        )

    if not payload.is_task:
        reply = (payload.reply or "").strip()
        if not reply:
            return Result.failure("Model reply is empty", ErrorCode.MALFORMED_MODEL_OUTPUT)
        return Result.success(PlainReply(text=reply))

    summary = (payload.summary or "").strip()
    if not summary:
        return Result.failure("Task has no summary", ErrorCode.MALFORMED_MODEL_OUTPUT)

    start_time = parse_civil_time(payload.start_time, tz)
    if start_time is None:
        return Result.failure(
            f"Task start_time is missing or unparseable: {payload.start_time!r}",
            ErrorCode.MALFORMED_MODEL_OUTPUT,
        )

    end_raw = (payload.end_time or "").strip()
    end_time = parse_civil_time(end_raw, tz) if end_raw else None
    if end_raw and end_time is None:
        return Result.failure(
            f"Task end_time is unparseable: {payload.end_time!r}",
            ErrorCode.MALFORMED_MODEL_OUTPUT,
        )
    if end_time is None:
        end_time = start_time + default_duration
    elif end_time <= start_time:
        logger.info(f"end_time {payload.end_time!r} is not after start_time, using default duration")
        end_time = start_time + default_duration

    quadrant = parse_quadrant(payload.quadrant)
    if quadrant is None:
        if payload.quadrant:
            logger.info(f"Unknown quadrant {payload.quadrant!r}, defaulting to {DEFAULT_QUADRANT.value}")
        quadrant = DEFAULT_QUADRANT

    return Result.success(
        ScheduledTask(summary=summary, start_time=start_time, end_time=end_time, quadrant=quadrant)
    )


def classify_text(
    text: str,
    now_utc: datetime,
    provider: Optional[LLMProvider],
    config: Settings = settings,
) -> Result[TaskDecision]:
    """Ask the model whether text is a schedulable task or a casual remark."""
    cleaned = (text or "").strip()
    if len(cleaned) < config.min_text_length:
        return Result.success(PlainReply(text=TOO_SHORT_REPLY))

    if provider is None:
        return Result.failure("No language model provider configured", ErrorCode.MODEL_ERROR)

    tz = civil_timezone(config.civil_timezone_offset_hours)
    now_civil = now_utc.astimezone(tz) if now_utc.tzinfo else now_utc.replace(tzinfo=timezone.utc).astimezone(tz)
    messages = build_classification_messages(cleaned, now_civil)

    llm_start = time.monotonic()
    try:
        response = provider.generate(
            messages,
            temperature=CLASSIFY_TEMPERATURE,
            max_tokens=CLASSIFY_MAX_TOKENS,
            timeout_seconds=config.llm_timeout_seconds,
            json_mode=True,
        )
    except Exception as e:
        logger.warning(f"Classification call failed: {e}")
        return Result.failure(f"Language model call failed: {e}", ErrorCode.MODEL_ERROR)

    logger.info(
        "Timing",
        extra={"context": {"stage": "classify_llm_ms", "elapsed_ms": round((time.monotonic() - llm_start) * 1000, 2)}},
    )

    result = parse_model_output(
        response.content,
        tz,
        default_duration=timedelta(minutes=config.default_task_duration_minutes),
    )
    if not result.ok:
        logger.warning(
            "Model output rejected",
            extra={"context": {"error": result.error, "raw": (response.content or "")[:300]}},
        )
    return result
