import json
from unittest.mock import Mock

import pytest

from app.config import Settings, settings
from app.schemas.lark import build_inbound_event
from app.services import dedup_service, token_service

VERIFICATION_TOKEN = "verify-me"


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Module-level settings used by the router, never a real .env."""
    monkeypatch.setattr(settings, "lark_verification_token", VERIFICATION_TOKEN)
    monkeypatch.setattr(settings, "lark_app_id", "cli_test")
    monkeypatch.setattr(settings, "lark_app_secret", "secret")
    monkeypatch.setattr(settings, "redis_url", None)
    monkeypatch.setattr(settings, "dedup_enabled", True)
    dedup_service.reset_local_cache()
    token_service.clear_token_cache()
    yield
    dedup_service.reset_local_cache()
    token_service.clear_token_cache()


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        lark_app_id="cli_test",
        lark_app_secret="secret",
        lark_verification_token=VERIFICATION_TOKEN,
        openai_api_key="test-key",
        civil_timezone_offset_hours=8,
    )


@pytest.fixture
def mock_provider():
    """Inference provider double."""
    return Mock()


def _make_message_body(message_type="text", content=None, message_id="om_test_1", chat_id="oc_chat_1", token=None):
    if content is None:
        content = {"text": "hi"}
    header = {"event_type": "im.message.receive_v1", "event_id": "ev_1", "create_time": "1700000000000"}
    if token is not None:
        header["token"] = token
    return {
        "schema": "2.0",
        "header": header,
        "event": {
            "sender": {"sender_id": {"open_id": "ou_user"}, "sender_type": "user"},
            "message": {
                "message_id": message_id,
                "chat_id": chat_id,
                "chat_type": "p2p",
                "message_type": message_type,
                "content": json.dumps(content),
            },
        },
    }


@pytest.fixture
def message_body():
    """Factory for im.message.receive_v1 webhook bodies."""
    return _make_message_body


@pytest.fixture
def make_event():
    def _make(message_type="text", content=None, message_id="om_test_1"):
        return build_inbound_event(_make_message_body(message_type, content, message_id=message_id))

    return _make
