import json
from unittest.mock import MagicMock, Mock, patch

import httpx

from app.services.lark_service import LarkService


def _client(mock_client_class):
    mock_client = MagicMock()
    mock_client_class.return_value.__enter__.return_value = mock_client
    return mock_client


class TestReplyText:
    @patch("app.services.lark_service.httpx.Client")
    def test_posts_text_reply(self, mock_client_class):
        mock_client = _client(mock_client_class)
        mock_client.request.return_value = Mock(status_code=200, json=Mock(return_value={"code": 0, "msg": "success"}))

        sent = LarkService("t-token").reply_text("om_1", 'say "hi"\nplease')

        assert sent is True
        method, url = mock_client.request.call_args[0]
        assert method == "POST"
        assert url == "https://open.feishu.cn/open-apis/im/v1/messages/om_1/reply"
        kwargs = mock_client.request.call_args[1]
        assert kwargs["headers"]["Authorization"] == "Bearer t-token"
        assert kwargs["json"]["msg_type"] == "text"
        assert json.loads(kwargs["json"]["content"]) == {"text": 'say "hi"\nplease'}

    @patch("app.services.lark_service.httpx.Client")
    def test_platform_error_returns_false(self, mock_client_class):
        mock_client = _client(mock_client_class)
        mock_client.request.return_value = Mock(
            status_code=400, json=Mock(return_value={"code": 230002, "msg": "bot not in chat"})
        )

        assert LarkService("t").reply_text("om_1", "hello") is False

    @patch("app.services.lark_service.httpx.Client")
    def test_network_error_is_swallowed(self, mock_client_class):
        mock_client_class.return_value.__enter__.side_effect = httpx.ConnectError("down")

        assert LarkService("t").reply_text("om_1", "hello") is False


class TestDownloadResource:
    @patch("app.services.lark_service.httpx.Client")
    def test_returns_bytes(self, mock_client_class):
        mock_client = _client(mock_client_class)
        mock_client.get.return_value = Mock(status_code=200, content=b"OggS", headers={"content-type": "audio/ogg"})

        result = LarkService("t").download_resource("om_1", "file_key_1")

        assert result.ok is True
        assert result.value.content == b"OggS"
        assert result.value.content_type == "audio/ogg"
        url = mock_client.get.call_args[0][0]
        assert url.endswith("/im/v1/messages/om_1/resources/file_key_1")
        assert mock_client.get.call_args[1]["params"] == {"type": "file"}

    @patch("app.services.lark_service.httpx.Client")
    def test_non_2xx_is_download_error(self, mock_client_class):
        mock_client = _client(mock_client_class)
        mock_client.get.return_value = Mock(status_code=403, text='{"code":99991672,"msg":"no permission"}')

        result = LarkService("t").download_resource("om_1", "fk")

        assert result.ok is False
        assert result.error_code == "download_error"
        assert result.details["status"] == 403
        assert "no permission" in result.details["body"]

    @patch("app.services.lark_service.httpx.Client")
    def test_transport_error_is_download_error(self, mock_client_class):
        mock_client = _client(mock_client_class)
        mock_client.get.side_effect = httpx.ReadTimeout("slow")

        result = LarkService("t").download_resource("om_1", "fk")

        assert result.error_code == "download_error"
