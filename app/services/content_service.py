"""Turn an inbound message into canonical text.

Text messages pass through untouched. Voice messages are downloaded from Lark
and sent to the speech-to-text provider; the ``on_transcribing`` hook fires
between the two so the caller can tell the user transcription has started.
"""

from typing import Callable, Optional

from app.config import settings
from app.logging_config import get_logger
from app.schemas.lark import InboundEvent, MessageModality
from app.services.lark_service import LarkService
from app.services.llm import LLMProvider
from app.services.result import ErrorCode, Result

logger = get_logger("content_service")

# Lark voice notes are Opus in an Ogg container
VOICE_FILENAME = "voice.ogg"
VOICE_MIME_TYPE = "audio/ogg"


def resolve_content(
    lark: LarkService,
    event: InboundEvent,
    provider: Optional[LLMProvider],
    *,
    on_transcribing: Optional[Callable[[], None]] = None,
    transcription_timeout: Optional[float] = None,
) -> Result[str]:
    if event.modality == MessageModality.TEXT:
        return Result.success(event.text_content().text)

    if event.modality == MessageModality.AUDIO:
        return _resolve_audio(
            lark,
            event,
            provider,
            on_transcribing=on_transcribing,
            transcription_timeout=transcription_timeout,
        )

    return Result.failure(
        f"Unsupported message type: {event.message_type or 'unknown'}",
        ErrorCode.UNSUPPORTED_MODALITY,
        {"message_type": event.message_type},
    )


def _resolve_audio(
    lark: LarkService,
    event: InboundEvent,
    provider: Optional[LLMProvider],
    *,
    on_transcribing: Optional[Callable[[], None]],
    transcription_timeout: Optional[float],
) -> Result[str]:
    audio = event.audio_content()

    download = lark.download_resource(event.message_id, audio.file_key)
    if not download.ok:
        return download

    if provider is None:
        return Result.failure("No speech-to-text provider configured", ErrorCode.TRANSCRIPTION_ERROR)

    if on_transcribing:
        on_transcribing()

    timeout = transcription_timeout if transcription_timeout is not None else settings.transcription_timeout_seconds
    try:
        transcript = provider.transcribe_audio(
            audio_bytes=download.value.content,
            filename=VOICE_FILENAME,
            mime_type=VOICE_MIME_TYPE,
            timeout_seconds=timeout,
        )
    except Exception as e:
        logger.warning(
            f"Transcription failed: {e}",
            extra={"context": {"message_id": event.message_id, "file_key": audio.file_key}},
        )
        return Result.failure(f"Transcription failed: {e}", ErrorCode.TRANSCRIPTION_ERROR)

    text = (transcript or "").strip()
    if not text:
        return Result.failure("Transcription returned no text", ErrorCode.EMPTY_TRANSCRIPTION)

    logger.info(
        "Voice message transcribed",
        extra={"context": {"message_id": event.message_id, "chars": len(text)}},
    )
    return Result.success(text)
