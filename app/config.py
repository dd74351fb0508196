from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    lark_app_id: str = ""
    lark_app_secret: str = ""
    lark_verification_token: str = ""
    lark_base_url: str = "https://open.feishu.cn/open-apis"

    # Civil time used for prompts and naive model timestamps (UTC+8 by default)
    civil_timezone_offset_hours: float = 8.0
    calendar_id: str = "primary"
    calendar_timezone: str = "Asia/Shanghai"
    calendar_reminder_minutes: int = 15
    default_task_duration_minutes: int = 60
    min_text_length: int = 2

    llm_provider: Literal["openai", "cloudflare"] = "openai"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_transcription_model: str = "whisper-1"
    cloudflare_account_id: Optional[str] = None
    cloudflare_api_token: Optional[str] = None
    cloudflare_llm_model: str = "@cf/meta/llama-3.1-8b-instruct"
    cloudflare_asr_model: str = "@cf/openai/whisper"

    http_timeout_seconds: float = 10.0
    llm_timeout_seconds: float = 30.0
    transcription_timeout_seconds: float = 30.0

    token_cache_enabled: bool = False
    dedup_enabled: bool = True
    dedup_ttl_seconds: int = 600
    redis_url: Optional[str] = None

    log_level: str = "INFO"
    debug: bool = False

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
