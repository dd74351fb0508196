"""Cloudflare Workers AI provider (REST API).

Models are addressed by their catalogue name, e.g. ``@cf/openai/whisper`` for
speech-to-text and ``@cf/meta/llama-3.1-8b-instruct`` for chat completion.
"""

import json
from typing import List, Optional

import httpx

from app.logging_config import get_logger
from app.services.llm.base import LLMProvider, LLMProviderError, LLMResponse

logger = get_logger("llm.cloudflare")


class CloudflareAIProvider(LLMProvider):
    BASE_URL = "https://api.cloudflare.com/client/v4/accounts/{account_id}/ai/run/{model}"

    def __init__(
        self,
        account_id: str,
        api_token: str,
        default_model: str = "@cf/meta/llama-3.1-8b-instruct",
        transcription_model: str = "@cf/openai/whisper",
    ):
        self.account_id = account_id
        self.api_token = api_token
        self.default_model = default_model
        self.transcription_model = transcription_model

    def _run_url(self, model: str) -> str:
        return self.BASE_URL.format(account_id=self.account_id, model=model)

    def _parse_result(self, response: httpx.Response, what: str) -> dict:
        if response.status_code != 200:
            logger.error(f"Workers AI {what} error: {response.status_code} - {response.text[:500]}")
            raise LLMProviderError(
                f"Workers AI {what} error: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        data = response.json()
        if not data.get("success", True):
            raise LLMProviderError(f"Workers AI {what} failed: {data.get('errors')}", body=response.text)
        result = data.get("result")
        if not isinstance(result, dict):
            raise LLMProviderError(f"Workers AI {what} returned no result", body=response.text)
        return result

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout_seconds: Optional[float] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        model = model or self.default_model
        timeout = timeout_seconds if timeout_seconds is not None else 60.0
        logger.debug(f"Workers AI request: model={model}, messages_count={len(messages)}")

        with httpx.Client(timeout=timeout) as client:
            response = client.post(
                self._run_url(model),
                headers={"Authorization": f"Bearer {self.api_token}"},
                json={"messages": messages, "temperature": temperature, "max_tokens": max_tokens},
            )

        result = self._parse_result(response, "completion")
        content = result.get("response") or ""
        if not isinstance(content, str):
            # Some models return already-decoded JSON when asked for JSON only
            content = json.dumps(content, ensure_ascii=False)
        return LLMResponse(content=content, model=model, usage=result.get("usage"))

    def transcribe_audio(
        self,
        *,
        audio_bytes: bytes,
        filename: str,
        mime_type: Optional[str] = None,
        language: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> str:
        if not audio_bytes:
            raise ValueError("audio_bytes is empty")

        timeout = timeout_seconds if timeout_seconds is not None else 30.0
        with httpx.Client(timeout=timeout) as client:
            response = client.post(
                self._run_url(self.transcription_model),
                headers={
                    "Authorization": f"Bearer {self.api_token}",
                    "Content-Type": mime_type or "application/octet-stream",
                },
                content=audio_bytes,
            )

        result = self._parse_result(response, "transcription")
        transcript = (result.get("text") or "").strip()
        if not transcript:
            logger.warning("Workers AI transcription returned empty text")
        return transcript
