from __future__ import annotations

from ..config import AppConfig
from ..constants import SUPPORTED_PROVIDERS
from ..errors import AuthenticationError, ConfigError
from .gemini import GeminiProvider


def get_provider(cfg: AppConfig) -> GeminiProvider:
    """Build the generation/transcription provider named in the configuration."""
    provider = cfg.provider.strip().lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise ConfigError(
            f"Unsupported model provider: {provider}. Supported: {', '.join(SUPPORTED_PROVIDERS)}."
        )
    if not cfg.api_key:
        raise AuthenticationError("GEMINI_API_KEY environment variable not set")
    return GeminiProvider(
        api_key=cfg.api_key,
        model=cfg.model,
        vision_model=cfg.vision_model,
        transcription_model=cfg.transcription_model,
        transcription_prompt=cfg.transcription_prompt,
    )


__all__ = ["GeminiProvider", "get_provider"]
