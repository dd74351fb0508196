import json
from dataclasses import dataclass
from typing import Optional

import httpx

from app.logging_config import get_logger
from app.services.result import ErrorCode, Result

logger = get_logger("lark_service")

DEFAULT_BASE_URL = "https://open.feishu.cn/open-apis"


@dataclass
class DownloadedResource:
    content: bytes
    content_type: Optional[str] = None


class LarkService:
    """Lark IM API calls made with a tenant access token."""

    def __init__(self, access_token: str, base_url: str = DEFAULT_BASE_URL, timeout: float = 10.0):
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json; charset=utf-8",
        }

    def _make_request(self, method: str, path: str, data: Optional[dict] = None) -> dict:
        """Make JSON request to Lark API. Never raises; errors come back as code=-1."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.request(method, url, headers=self._headers(), json=data)
            try:
                payload = response.json()
            except ValueError:
                payload = {"code": -1, "msg": response.text[:500]}
            if response.status_code >= 400 and not payload.get("code"):
                payload["code"] = response.status_code
            return payload
        except Exception as e:
            logger.error(f"Lark API error: {e}")
            return {"code": -1, "msg": str(e)}

    def reply_text(self, message_id: str, text: str) -> bool:
        """Reply into the thread of message_id. Best effort: failures are logged only."""
        data = {
            "msg_type": "text",
            "content": json.dumps({"text": text}, ensure_ascii=False),
        }
        result = self._make_request("POST", f"im/v1/messages/{message_id}/reply", data)
        if result.get("code") != 0:
            logger.warning(
                "Reply delivery failed",
                extra={
                    "context": {
                        "error_code": ErrorCode.REPLY_ERROR.value,
                        "message_id": message_id,
                        "lark_code": result.get("code"),
                        "lark_msg": result.get("msg"),
                    }
                },
            )
            return False
        return True

    def download_resource(
        self, message_id: str, file_key: str, resource_type: str = "file"
    ) -> Result[DownloadedResource]:
        """Download a message attachment (voice notes are resource_type=file)."""
        url = f"{self.base_url}/im/v1/messages/{message_id}/resources/{file_key}"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.get(
                    url,
                    params={"type": resource_type},
                    headers={"Authorization": f"Bearer {self.access_token}"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Resource download failed: {e}")
            return Result.failure(f"Download failed: {e}", ErrorCode.DOWNLOAD_ERROR, {"status": None, "body": str(e)})

        if not 200 <= response.status_code < 300:
            body = response.text[:1000]
            logger.warning(
                "Resource download rejected",
                extra={"context": {"message_id": message_id, "status": response.status_code, "body": body}},
            )
            return Result.failure(
                f"Download failed with status {response.status_code}",
                ErrorCode.DOWNLOAD_ERROR,
                {"status": response.status_code, "body": body},
            )

        return Result.success(
            DownloadedResource(content=response.content, content_type=response.headers.get("content-type"))
        )
