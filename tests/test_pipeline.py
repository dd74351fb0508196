from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest

from app.services.lark_service import DownloadedResource
from app.services.llm import LLMResponse
from app.services.pipeline import (
    MSG_LISTENING,
    MSG_UNSUPPORTED,
    MessagePipeline,
    format_failure_reply,
)
from app.services.pipeline_state import PipelineStage
from app.services.result import Result
from app.services.token_service import AccessToken

NOW_UTC = datetime(2024, 5, 20, 1, 30, tzinfo=timezone.utc)
TASK_OUTPUT = (
    '```json\n{"is_task": true, "summary": "Buy milk", "start_time": "2024-05-21 17:00", '
    '"quadrant": "urgent_important"}\n```'
)


@pytest.fixture
def token_ok():
    with patch(
        "app.services.pipeline.acquire_tenant_access_token",
        return_value=Result.success(AccessToken(value="t-abc", expires_in=7200)),
    ) as mock_acquire:
        yield mock_acquire


@pytest.fixture
def lark():
    with patch("app.services.pipeline.LarkService") as mock_cls:
        instance = mock_cls.return_value
        instance.reply_text.return_value = True
        yield instance


@pytest.fixture
def calendar():
    with patch("app.services.pipeline.create_calendar_event", return_value=Result.success(True)) as mock_create:
        yield mock_create


@pytest.fixture
def pipeline(test_settings, mock_provider):
    return MessagePipeline(config=test_settings, provider=mock_provider, clock=lambda: NOW_UTC)


def _replies(lark):
    return [c.args[1] for c in lark.reply_text.call_args_list]


class TestTextMessages:
    def test_casual_text_gets_single_reply_with_content(self, pipeline, token_ok, lark, calendar, mock_provider, make_event):
        mock_provider.generate.return_value = LLMResponse(content='{"is_task": false, "reply": "Hello there!"}', model="m")

        stage = pipeline.run(make_event("text", {"text": "hi"}))

        assert stage == PipelineStage.DONE
        replies = _replies(lark)
        assert len(replies) == 1
        assert "hi" in replies[0]
        assert "Hello there!" in replies[0]
        assert lark.reply_text.call_args.args[0] == "om_test_1"
        calendar.assert_not_called()

    def test_task_creates_event_and_confirms(self, pipeline, token_ok, lark, calendar, mock_provider, make_event):
        mock_provider.generate.return_value = LLMResponse(content=TASK_OUTPUT, model="m")

        pipeline.run(make_event("text", {"text": "buy milk tomorrow at 5pm"}))

        calendar.assert_called_once()
        args = calendar.call_args.args
        assert args[0] == "t-abc"
        assert args[1] == "Buy milk"
        # 2024-05-21 17:00 at UTC+8 is 09:00 UTC
        assert args[2] == int(datetime(2024, 5, 21, 9, 0, tzinfo=timezone.utc).timestamp())
        assert args[3] - args[2] == 3600
        replies = _replies(lark)
        assert len(replies) == 1
        assert "Buy milk" in replies[0]
        assert "2024-05-21 17:00 - 18:00" in replies[0]

    def test_token_acquired_once(self, pipeline, token_ok, lark, calendar, mock_provider, make_event):
        mock_provider.generate.return_value = LLMResponse(content=TASK_OUTPUT, model="m")

        pipeline.run(make_event("text", {"text": "buy milk tomorrow at 5pm"}))

        token_ok.assert_called_once()

    def test_short_text_skips_model(self, pipeline, token_ok, lark, calendar, mock_provider, make_event):
        pipeline.run(make_event("text", {"text": "k"}))

        mock_provider.generate.assert_not_called()
        assert "too short" in _replies(lark)[0]

    def test_malformed_model_output_reports_failure(self, pipeline, token_ok, lark, calendar, mock_provider, make_event):
        mock_provider.generate.return_value = LLMResponse(content="Sure, I can help with that.", model="m")

        stage = pipeline.run(make_event("text", {"text": "buy milk"}))

        assert stage == PipelineStage.DONE
        replies = _replies(lark)
        assert len(replies) == 1
        assert "AI processing failed" in replies[0]
        calendar.assert_not_called()

    def test_calendar_failure_reports_platform_error(self, pipeline, token_ok, lark, calendar, mock_provider, make_event):
        mock_provider.generate.return_value = LLMResponse(content=TASK_OUTPUT, model="m")
        calendar.return_value = Result.failure(
            "Calendar API returned 403",
            "scheduling_error",
            {"status": 403, "body": {"code": 190014, "msg": "no calendar permission"}},
        )

        pipeline.run(make_event("text", {"text": "buy milk tomorrow at 5pm"}))

        replies = _replies(lark)
        assert len(replies) == 1
        assert "calendar event" in replies[0]
        assert "no calendar permission" in replies[0]


class TestAudioMessages:
    def test_download_failure_single_reply_no_inference(self, pipeline, token_ok, lark, calendar, mock_provider, make_event):
        lark.download_resource.return_value = Result.failure(
            "Download failed with status 404", "download_error", {"status": 404, "body": "not found"}
        )

        pipeline.run(make_event("audio", {"file_key": "fk"}))

        mock_provider.transcribe_audio.assert_not_called()
        mock_provider.generate.assert_not_called()
        replies = _replies(lark)
        assert len(replies) == 1
        assert "download" in replies[0]
        assert "404" in replies[0]

    def test_voice_task_sends_listening_notice_first(self, pipeline, token_ok, lark, calendar, mock_provider, make_event):
        lark.download_resource.return_value = Result.success(DownloadedResource(content=b"OggS"))
        mock_provider.transcribe_audio.return_value = "buy milk tomorrow at five"
        mock_provider.generate.return_value = LLMResponse(content=TASK_OUTPUT, model="m")

        pipeline.run(make_event("audio", {"file_key": "fk"}))

        replies = _replies(lark)
        assert replies[0] == MSG_LISTENING
        assert "Buy milk" in replies[-1]
        assert mock_provider.generate.call_args[0][0][1]["content"] == "buy milk tomorrow at five"
        calendar.assert_called_once()

    def test_empty_transcription(self, pipeline, token_ok, lark, calendar, mock_provider, make_event):
        lark.download_resource.return_value = Result.success(DownloadedResource(content=b"OggS"))
        mock_provider.transcribe_audio.return_value = ""

        pipeline.run(make_event("audio", {"file_key": "fk"}))

        replies = _replies(lark)
        assert replies == [MSG_LISTENING, format_failure_reply(Result.failure("", "empty_transcription"))]
        mock_provider.generate.assert_not_called()


class TestOtherPaths:
    def test_unsupported_type(self, pipeline, token_ok, lark, calendar, mock_provider, make_event):
        pipeline.run(make_event("image", {"image_key": "img"}))

        assert _replies(lark) == [MSG_UNSUPPORTED]
        mock_provider.generate.assert_not_called()

    def test_token_failure_stops_silently(self, pipeline, lark, calendar, mock_provider, make_event):
        with patch(
            "app.services.pipeline.acquire_tenant_access_token",
            return_value=Result.failure("code=10014", "token_error"),
        ):
            stage = pipeline.run(make_event("text", {"text": "buy milk"}))

        assert stage == PipelineStage.DONE
        lark.reply_text.assert_not_called()
        mock_provider.generate.assert_not_called()

    def test_unexpected_exception_is_contained(self, pipeline, token_ok, lark, calendar, mock_provider, make_event):
        mock_provider.generate.return_value = LLMResponse(content='{"is_task": false, "reply": "ok"}', model="m")
        lark.reply_text.side_effect = RuntimeError("boom")

        assert pipeline.run(make_event("text", {"text": "hello"})) == PipelineStage.DONE

    def test_provider_built_lazily_from_settings(self, test_settings, token_ok, lark, calendar, make_event):
        provider = Mock()
        provider.generate.return_value = LLMResponse(content='{"is_task": false, "reply": "ok"}', model="m")
        with patch("app.services.pipeline.get_llm_provider", return_value=provider) as factory:
            MessagePipeline(config=test_settings, clock=lambda: NOW_UTC).run(make_event("text", {"text": "hello"}))

        factory.assert_called_once_with(test_settings)
        provider.generate.assert_called_once()


class TestFormatFailureReply:
    def test_scheduling_error_includes_details(self):
        text = format_failure_reply(
            Result.failure("x", "scheduling_error", {"status": 400, "body": {"msg": "invalid timestamp"}})
        )
        assert "invalid timestamp" in text

    def test_model_error_has_no_details(self):
        text = format_failure_reply(Result.failure("x", "malformed_model_output", {"raw": "secret prompt echo"}))
        assert "secret prompt echo" not in text

    def test_unknown_code(self):
        assert "Something went wrong" in format_failure_reply(Result.failure("x", "mystery"))
