from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, model_validator

MODEL_TIME_FORMAT = "%Y-%m-%d %H:%M"
MODEL_TIME_FORMAT_SECONDS = "%Y-%m-%d %H:%M:%S"


class Quadrant(str, Enum):
    URGENT_IMPORTANT = "urgent_important"
    IMPORTANT_NOT_URGENT = "important_not_urgent"
    URGENT_NOT_IMPORTANT = "urgent_not_important"
    NOT_URGENT_NOT_IMPORTANT = "not_urgent_not_important"


DEFAULT_QUADRANT = Quadrant.IMPORTANT_NOT_URGENT

QUADRANT_ALIASES = {
    "q1": Quadrant.URGENT_IMPORTANT,
    "1": Quadrant.URGENT_IMPORTANT,
    "q2": Quadrant.IMPORTANT_NOT_URGENT,
    "2": Quadrant.IMPORTANT_NOT_URGENT,
    "q3": Quadrant.URGENT_NOT_IMPORTANT,
    "3": Quadrant.URGENT_NOT_IMPORTANT,
    "q4": Quadrant.NOT_URGENT_NOT_IMPORTANT,
    "4": Quadrant.NOT_URGENT_NOT_IMPORTANT,
    "neither_urgent_nor_important": Quadrant.NOT_URGENT_NOT_IMPORTANT,
}

QUADRANT_LABELS = {
    Quadrant.URGENT_IMPORTANT: "🔴 Urgent & important",
    Quadrant.IMPORTANT_NOT_URGENT: "🟡 Important, not urgent",
    Quadrant.URGENT_NOT_IMPORTANT: "🔵 Urgent, not important",
    Quadrant.NOT_URGENT_NOT_IMPORTANT: "⚪ Neither urgent nor important",
}


def format_model_time(value: datetime) -> str:
    if value.second:
        return value.strftime(MODEL_TIME_FORMAT_SECONDS)
    return value.strftime(MODEL_TIME_FORMAT)


def parse_quadrant(value: object) -> Optional[Quadrant]:
    """Map a model-supplied quadrant onto the enum. None if unrecognised."""
    if value is None:
        return None
    normalized = str(value).strip().lower().replace("-", "_").replace(" ", "_")
    if not normalized:
        return None
    try:
        return Quadrant(normalized)
    except ValueError:
        return QUADRANT_ALIASES.get(normalized)


class ModelDecisionPayload(BaseModel):
    """Raw JSON object the model is asked to produce."""

    model_config = ConfigDict(extra="ignore")

    is_task: bool
    summary: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    quadrant: Optional[str] = None
    reply: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _stringify_scalars(cls, data):
        if isinstance(data, dict) and isinstance(data.get("quadrant"), int):
            data = {**data, "quadrant": str(data["quadrant"])}
        return data


class ScheduledTask(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["task"] = "task"
    summary: str
    start_time: datetime
    end_time: datetime
    quadrant: Quadrant = DEFAULT_QUADRANT

    @model_validator(mode="after")
    def _check_window(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    def to_model_payload(self) -> dict:
        start = self.start_time
        end = self.end_time.astimezone(start.tzinfo) if start.tzinfo else self.end_time
        return {
            "is_task": True,
            "summary": self.summary,
            "start_time": format_model_time(start),
            "end_time": format_model_time(end),
            "quadrant": self.quadrant.value,
        }


class PlainReply(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["reply"] = "reply"
    text: str

    def to_model_payload(self) -> dict:
        return {"is_task": False, "reply": self.text}


TaskDecision = Union[ScheduledTask, PlainReply]
