from typing import Optional

from pydantic import BaseModel


class WebhookResponse(BaseModel):
    success: bool
    message: str
    message_id: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
