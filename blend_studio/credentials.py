# blend_studio/credentials.py
# Ayarlar ekranindan girilen API anahtari (bellekte) + .env fallback

from typing import Optional

from .config import settings


class ApiKeyStore:
    """
    Holds the Gemini API key set at runtime. Falls back to GEMINI_API_KEY from
    configuration, so a key saved in Settings wins over the environment.
    """

    def __init__(self, default: Optional[str] = None):
        self._default = default
        self._override: Optional[str] = None

    def set(self, api_key: str) -> None:
        api_key = api_key.strip()
        if not api_key:
            raise ValueError("API key must not be empty")
        self._override = api_key

    def clear(self) -> None:
        self._override = None

    def get(self) -> Optional[str]:
        return self._override or self._default or None

    @property
    def source(self) -> Optional[str]:
        if self._override:
            return "settings"
        if self._default:
            return "environment"
        return None


def default_key_store() -> ApiKeyStore:
    return ApiKeyStore(default=settings.GEMINI_API_KEY)
