from app.schemas.decision import PlainReply, Quadrant, ScheduledTask, TaskDecision
from app.schemas.lark import EventType, InboundEvent, MessageModality, build_inbound_event
from app.schemas.webhook import ErrorResponse, WebhookResponse

__all__ = [
    "ErrorResponse",
    "EventType",
    "InboundEvent",
    "MessageModality",
    "PlainReply",
    "Quadrant",
    "ScheduledTask",
    "TaskDecision",
    "WebhookResponse",
    "build_inbound_event",
]
