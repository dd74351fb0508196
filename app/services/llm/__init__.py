from app.config import Settings, settings
from app.services.llm.base import LLMProvider, LLMProviderError, LLMResponse
from app.services.llm.cloudflare_provider import CloudflareAIProvider
from app.services.llm.openai_provider import OpenAIProvider


def get_llm_provider(config: Settings = settings) -> LLMProvider:
    """Build the inference provider selected by LLM_PROVIDER."""
    if config.llm_provider == "cloudflare":
        if not config.cloudflare_account_id or not config.cloudflare_api_token:
            raise ValueError("CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN are required for the cloudflare provider")
        return CloudflareAIProvider(
            account_id=config.cloudflare_account_id,
            api_token=config.cloudflare_api_token,
            default_model=config.cloudflare_llm_model,
            transcription_model=config.cloudflare_asr_model,
        )
    if not config.openai_api_key:
        raise ValueError("OPENAI_API_KEY is required for the openai provider")
    return OpenAIProvider(
        api_key=config.openai_api_key,
        default_model=config.openai_model,
        transcription_model=config.openai_transcription_model,
    )


__all__ = [
    "CloudflareAIProvider",
    "LLMProvider",
    "LLMProviderError",
    "LLMResponse",
    "OpenAIProvider",
    "get_llm_provider",
]
