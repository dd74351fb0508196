import hmac
import json
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from app.config import settings
from app.logging_config import get_logger
from app.schemas.lark import EventType, InboundEvent, build_inbound_event
from app.schemas.webhook import ErrorResponse, WebhookResponse
from app.services.dedup_service import is_duplicate_message_id
from app.services.dispatch import BackgroundDispatcher, get_dispatcher
from app.services.pipeline import process_message_event
from app.services.result import ErrorCode

logger = get_logger("webhook")

router = APIRouter()


def _error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=error).model_dump())


def _token_matches(provided: Any, expected: str) -> bool:
    if not isinstance(provided, str) or not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


async def parse_webhook_body(request: Request) -> dict:
    """Decode the JSON body. Raises ValueError for anything that is not a JSON object."""
    raw = await request.body()
    body = json.loads(raw.decode("utf-8"))
    if not isinstance(body, dict):
        raise ValueError("Webhook body must be a JSON object")
    return body


@router.post("/")
@router.post("/webhook/lark")
async def handle_lark_webhook(request: Request, dispatcher: BackgroundDispatcher = Depends(get_dispatcher)):
    """
    Lark event callback:
    - url_verification -> echo the challenge (synchronous handshake)
    - im.message.receive_v1 -> enqueue processing, answer 200 right away
    - anything else -> 200, ignored
    """
    try:
        body = await parse_webhook_body(request)
    except ValueError as e:
        logger.warning(f"Malformed webhook body: {e}", extra={"context": {"error_code": ErrorCode.MALFORMED_REQUEST.value}})
        return _error_response(status.HTTP_400_BAD_REQUEST, f"Malformed JSON body: {e}")

    try:
        event = build_inbound_event(body)

        if event.event_type == EventType.URL_VERIFICATION:
            return handle_url_verification(event)

        if event.event_type == EventType.MESSAGE_RECEIVE:
            return await handle_message_event(event, dispatcher)

        logger.debug(f"Ignoring event: {(body.get('header') or {}).get('event_type') or body.get('type')}")
        return WebhookResponse(success=True, message="Ignored")

    except Exception as e:
        logger.error(f"Webhook processing error: {e}", exc_info=True)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))


def handle_url_verification(event: InboundEvent):
    if not _token_matches(event.verification_token, settings.lark_verification_token):
        logger.warning("URL verification token mismatch", extra={"context": {"error_code": ErrorCode.HANDSHAKE_MISMATCH.value}})
        return _error_response(status.HTTP_403_FORBIDDEN, "Invalid verification token")
    logger.info("URL verification handshake completed")
    return JSONResponse(content={"challenge": event.challenge})


async def handle_message_event(event: InboundEvent, dispatcher: BackgroundDispatcher):
    # Schema 2.0 envelopes carry the verification token in the header
    if event.verification_token is not None and not _token_matches(
        event.verification_token, settings.lark_verification_token
    ):
        logger.warning(
            "Event token mismatch",
            extra={"context": {"error_code": ErrorCode.HANDSHAKE_MISMATCH.value, "message_id": event.message_id}},
        )
        return _error_response(status.HTTP_403_FORBIDDEN, "Invalid verification token")

    if await is_duplicate_message_id(event.message_id):
        return WebhookResponse(success=True, message="Duplicate", message_id=event.message_id)

    logger.info(
        "Message event accepted",
        extra={
            "context": {
                "message_id": event.message_id,
                "chat_id": event.chat_id,
                "message_type": event.message_type,
                "modality": event.modality.value,
            }
        },
    )
    dispatcher.enqueue(process_message_event, event)
    return WebhookResponse(success=True, message="Accepted", message_id=event.message_id)
