import json
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

URL_VERIFICATION_TYPE = "url_verification"
MESSAGE_RECEIVE_EVENT = "im.message.receive_v1"


class EventType(str, Enum):
    URL_VERIFICATION = "url_verification"
    MESSAGE_RECEIVE = "message_receive"
    OTHER = "other"


class MessageModality(str, Enum):
    TEXT = "text"
    AUDIO = "audio"
    UNSUPPORTED = "unsupported"


class UrlVerificationRequest(BaseModel):
    type: str
    token: Any = None
    challenge: Any = None


class EventHeader(BaseModel):
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    token: Any = None
    create_time: Optional[str] = None
    app_id: Optional[str] = None
    tenant_key: Optional[str] = None


class LarkSenderId(BaseModel):
    open_id: Optional[str] = None
    union_id: Optional[str] = None
    user_id: Optional[str] = None


class LarkSender(BaseModel):
    sender_id: Optional[LarkSenderId] = None
    sender_type: Optional[str] = None  # user, app


class LarkMessage(BaseModel):
    message_id: str
    chat_id: str
    message_type: str
    content: str = "{}"  # JSON-encoded, schema depends on message_type
    chat_type: Optional[str] = None  # p2p, group
    create_time: Optional[str] = None


class MessageReceiveEvent(BaseModel):
    message: LarkMessage
    sender: Optional[LarkSender] = None


class EventEnvelope(BaseModel):
    header: EventHeader
    event: Optional[dict] = None


class TextContent(BaseModel):
    text: str


class AudioContent(BaseModel):
    file_key: str
    duration: Optional[int] = None  # milliseconds


class InboundEvent(BaseModel):
    """One inbound webhook delivery, validated and flattened."""

    model_config = ConfigDict(frozen=True)

    event_type: EventType
    verification_token: Any = None
    challenge: Any = None
    message_id: str = ""
    chat_id: str = ""
    message_type: str = ""
    modality: MessageModality = MessageModality.UNSUPPORTED
    raw_content: dict = Field(default_factory=dict)
    create_time: Optional[str] = None

    def text_content(self) -> TextContent:
        return TextContent(**self.raw_content)

    def audio_content(self) -> AudioContent:
        return AudioContent(**self.raw_content)


MODALITY_BY_MESSAGE_TYPE = {
    "text": MessageModality.TEXT,
    "audio": MessageModality.AUDIO,
}


def parse_message_content(message_type: str, content: str) -> tuple[MessageModality, dict]:
    """Decode the JSON-encoded message content and validate it for its type.

    Raises ValueError (pydantic's ValidationError included) when the content
    is not JSON or lacks the fields its message type requires.
    """
    decoded = json.loads(content or "{}")
    if not isinstance(decoded, dict):
        raise ValueError(f"Message content must be a JSON object, got {type(decoded).__name__}")

    modality = MODALITY_BY_MESSAGE_TYPE.get(message_type, MessageModality.UNSUPPORTED)
    if modality == MessageModality.TEXT:
        TextContent(**decoded)
    elif modality == MessageModality.AUDIO:
        AudioContent(**decoded)
    return modality, decoded


def build_inbound_event(body: dict) -> InboundEvent:
    """Map a raw webhook body onto an InboundEvent."""
    if body.get("type") == URL_VERIFICATION_TYPE:
        handshake = UrlVerificationRequest(**body)
        return InboundEvent(
            event_type=EventType.URL_VERIFICATION,
            verification_token=handshake.token,
            challenge=handshake.challenge,
        )

    header = body.get("header")
    if not isinstance(header, dict) or header.get("event_type") != MESSAGE_RECEIVE_EVENT:
        return InboundEvent(event_type=EventType.OTHER)

    envelope = EventEnvelope(**body)
    event = MessageReceiveEvent(**(envelope.event or {}))
    message = event.message
    modality, content = parse_message_content(message.message_type, message.content)
    return InboundEvent(
        event_type=EventType.MESSAGE_RECEIVE,
        verification_token=envelope.header.token,
        message_id=message.message_id,
        chat_id=message.chat_id,
        message_type=message.message_type,
        modality=modality,
        raw_content=content,
        create_time=message.create_time,
    )
