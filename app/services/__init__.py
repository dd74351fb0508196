from app.services.calendar_service import create_calendar_event
from app.services.classifier_service import classify_text, parse_model_output
from app.services.content_service import resolve_content
from app.services.lark_service import LarkService
from app.services.pipeline import MessagePipeline, process_message_event
from app.services.result import ErrorCode, Result
from app.services.token_service import AccessToken, acquire_tenant_access_token
