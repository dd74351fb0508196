"""Background processing of one inbound Lark message.

Runs after the webhook has already answered 200:
token -> content -> classification -> calendar (tasks only) -> reply.
Every failure ends the run with a single diagnostic reply; nothing raised
here reaches the web server.
"""

import json
from datetime import datetime, timezone
from typing import Callable, Optional

from app.config import Settings, settings
from app.logging_config import get_event_logger
from app.schemas.decision import QUADRANT_LABELS, PlainReply, ScheduledTask
from app.schemas.lark import InboundEvent, MessageModality
from app.services.calendar_service import create_calendar_event
from app.services.classifier_service import classify_text
from app.services.content_service import resolve_content
from app.services.lark_service import LarkService
from app.services.llm import LLMProvider, get_llm_provider
from app.services.pipeline_state import PipelineStage, finish, transition
from app.services.result import ErrorCode, Result
from app.services.token_service import acquire_tenant_access_token

MSG_LISTENING = "🎧 Got your voice message, listening..."
MSG_UNSUPPORTED = "Sorry, this message type is not supported yet. Please send text or a voice message."
MSG_PLAIN_REPLY = '💬 Received: "{text}"\n{reply}'
MSG_TASK_SCHEDULED = "✅ Added to your calendar\n📌 {summary}\n🕒 {start} - {end}\n{quadrant}"

FAILURE_MESSAGES = {
    ErrorCode.DOWNLOAD_ERROR.value: "❌ Could not download the voice message.",
    ErrorCode.TRANSCRIPTION_ERROR.value: "❌ Speech recognition failed. Please try again or send text.",
    ErrorCode.EMPTY_TRANSCRIPTION.value: "🤔 I couldn't hear anything in that voice message.",
    ErrorCode.UNSUPPORTED_MODALITY.value: MSG_UNSUPPORTED,
    ErrorCode.MALFORMED_MODEL_OUTPUT.value: "❌ AI processing failed: the model's answer could not be understood.",
    ErrorCode.MODEL_ERROR.value: "❌ AI processing failed: the language model is not available right now.",
    ErrorCode.SCHEDULING_ERROR.value: "❌ Could not create the calendar event.",
}
MSG_GENERIC_FAILURE = "❌ Something went wrong while processing your message."

# Upstream payloads worth showing to whoever debugs app permissions
DIAGNOSTIC_CODES = {ErrorCode.DOWNLOAD_ERROR.value, ErrorCode.SCHEDULING_ERROR.value}
DIAGNOSTIC_MAX_CHARS = 800


def format_failure_reply(result: Result) -> str:
    text = FAILURE_MESSAGES.get(result.error_code, MSG_GENERIC_FAILURE)
    if result.error_code in DIAGNOSTIC_CODES and result.details:
        details = json.dumps(result.details, ensure_ascii=False, default=str)
        text += f"\nDetails: {details[:DIAGNOSTIC_MAX_CHARS]}"
    return text


def format_task_reply(task: ScheduledTask) -> str:
    start = task.start_time
    end = task.end_time.astimezone(start.tzinfo)
    end_format = "%H:%M" if end.date() == start.date() else "%Y-%m-%d %H:%M"
    return MSG_TASK_SCHEDULED.format(
        summary=task.summary,
        start=start.strftime("%Y-%m-%d %H:%M"),
        end=end.strftime(end_format),
        quadrant=QUADRANT_LABELS[task.quadrant],
    )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MessagePipeline:
    def __init__(
        self,
        config: Settings = settings,
        provider: Optional[LLMProvider] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.config = config
        self._provider = provider
        self.clock = clock

    def _get_provider(self, log) -> Optional[LLMProvider]:
        if self._provider is None:
            try:
                self._provider = get_llm_provider(self.config)
            except ValueError as e:
                log.error(f"Inference provider unavailable: {e}")
                return None
        return self._provider

    def run(self, event: InboundEvent) -> PipelineStage:
        """Process one event. Never raises."""
        log = get_event_logger("pipeline", message_id=event.message_id, chat_id=event.chat_id)
        try:
            return self._run(event, log)
        except Exception as e:
            log.error(f"Pipeline crashed: {e}", exc_info=True)
            return PipelineStage.DONE

    def _run(self, event: InboundEvent, log) -> PipelineStage:
        stage = PipelineStage.ACKNOWLEDGED
        config = self.config

        token_result = acquire_tenant_access_token(
            config.lark_app_id,
            config.lark_app_secret,
            base_url=config.lark_base_url,
            timeout=config.http_timeout_seconds,
            use_cache=config.token_cache_enabled,
        )
        if not token_result.ok:
            # Replying needs the token, so this one is only logged
            log.error("Token acquisition failed", context={"error": token_result.error})
            return finish(stage)
        stage = transition(stage, PipelineStage.TOKEN_ACQUIRED)
        token = token_result.value

        lark = LarkService(token.value, base_url=config.lark_base_url, timeout=config.http_timeout_seconds)

        def fail(result: Result, current: PipelineStage) -> PipelineStage:
            log.warning(
                "Pipeline stopped",
                context={"stage": current.value, "error_code": result.error_code, "error": result.error},
            )
            lark.reply_text(event.message_id, format_failure_reply(result))
            return finish(current)

        content = resolve_content(
            lark,
            event,
            self._get_provider(log) if event.modality == MessageModality.AUDIO else None,
            on_transcribing=lambda: lark.reply_text(event.message_id, MSG_LISTENING),
            transcription_timeout=config.transcription_timeout_seconds,
        )
        if not content.ok:
            return fail(content, stage)
        stage = transition(stage, PipelineStage.CONTENT_RESOLVED)
        text = content.value

        provider = self._get_provider(log) if len(text.strip()) >= config.min_text_length else None
        decision = classify_text(text, self.clock(), provider, config)
        if not decision.ok:
            return fail(decision, stage)
        stage = transition(stage, PipelineStage.CLASSIFIED)
        log.info("Message classified", context={"stage": stage.value, "kind": decision.value.kind})

        if isinstance(decision.value, PlainReply):
            lark.reply_text(event.message_id, MSG_PLAIN_REPLY.format(text=text, reply=decision.value.text))
            stage = transition(stage, PipelineStage.REPLIED)
            return finish(stage)

        task = decision.value
        scheduled = create_calendar_event(
            token.value,
            task.summary,
            int(task.start_time.timestamp()),
            int(task.end_time.timestamp()),
            description=f"{QUADRANT_LABELS[task.quadrant]}\n\n{text}",
            config=config,
        )
        if not scheduled.ok:
            return fail(scheduled, stage)
        stage = transition(stage, PipelineStage.SCHEDULED)

        lark.reply_text(event.message_id, format_task_reply(task))
        stage = transition(stage, PipelineStage.REPLIED)
        return finish(stage)


def process_message_event(event: InboundEvent) -> PipelineStage:
    """Background job entry point."""
    return MessagePipeline().run(event)
