from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    HANDSHAKE_MISMATCH = "handshake_mismatch"
    MALFORMED_REQUEST = "malformed_request"
    TOKEN_ERROR = "token_error"
    DOWNLOAD_ERROR = "download_error"
    TRANSCRIPTION_ERROR = "transcription_error"
    EMPTY_TRANSCRIPTION = "empty_transcription"
    UNSUPPORTED_MODALITY = "unsupported_modality"
    MALFORMED_MODEL_OUTPUT = "malformed_model_output"
    MODEL_ERROR = "model_error"
    SCHEDULING_ERROR = "scheduling_error"
    REPLY_ERROR = "reply_error"


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    details: Optional[dict] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown", details: Optional[dict] = None) -> "Result[T]":
        if isinstance(code, ErrorCode):
            code = code.value
        return Result(ok=False, error=error, error_code=code, details=details)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
