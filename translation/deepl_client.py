"""
DeepL v2 REST client (POST /v2/translate) over httpx.

Returns the translated text with the billed character count, which feeds the
translation usage log. Source language may be omitted for auto-detection.
"""

import logging
import os
from typing import List, Optional

import httpx
from pydantic import BaseModel

from services.errors import UpstreamServiceError, ValidationFailed, describe

log = logging.getLogger(__name__)

DEEPL_AUTH_KEY = os.getenv("DEEPL_AUTH_KEY", "")
DEEPL_FREE_URL = "https://api-free.deepl.com/v2/translate"
DEEPL_PRO_URL = "https://api.deepl.com/v2/translate"
TRANSLATION_TIMEOUT_SECONDS = float(os.getenv("TRANSLATION_TIMEOUT_SECONDS", "30"))

# DeepL wants a regional variant for these targets
_TARGET_VARIANTS = {"en": "EN-US", "pt": "PT-PT"}


def default_api_url(auth_key: str) -> str:
    # free-plan keys end in ":fx"
    return os.getenv("DEEPL_API_URL") or (DEEPL_FREE_URL if auth_key.endswith(":fx") else DEEPL_PRO_URL)


def target_code(language: str) -> str:
    return _TARGET_VARIANTS.get(language.lower(), language.upper())


def source_code(language: Optional[str]) -> Optional[str]:
    """Source languages are never regional: en-US → EN. None means auto-detect."""
    if not language:
        return None
    return language.split("-")[0].upper()


class TranslatedText(BaseModel):
    text: str
    billed_characters: int
    detected_source_language: Optional[str] = None


class DeepLClient:
    def __init__(
        self,
        auth_key: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: float = TRANSLATION_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.auth_key = auth_key if auth_key is not None else DEEPL_AUTH_KEY
        self.api_url = api_url or default_api_url(self.auth_key)
        self.timeout = timeout
        self.transport = transport

    async def translate_texts(
        self,
        texts: List[str],
        target_language: str,
        source_language: Optional[str] = None,
    ) -> List[TranslatedText]:
        """
        Translate several strings in one request, results in input order.

        Raises:
            UpstreamServiceError: missing auth key, transport failure, timeout, or non-2xx status
            ValidationFailed:     response body without one translation per text
        """
        if not self.auth_key:
            log.error("[DEEPL] DEEPL_AUTH_KEY is not set. Add it to your .env file.")
            raise UpstreamServiceError("translation service is not configured", "translate", target=target_language)
        if not texts:
            return []

        payload = {
            "text": texts,
            "target_lang": target_code(target_language),
            "show_billed_characters": True,
        }
        source = source_code(source_language)
        if source:
            payload["source_lang"] = source

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    self.api_url,
                    headers={
                        "Authorization": f"DeepL-Auth-Key {self.auth_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
                response.raise_for_status()
                body = response.json()
        except httpx.TimeoutException as e:
            log.error(f"[DEEPL] timed out after {self.timeout}s (target={target_language})")
            raise UpstreamServiceError("translation service timed out", "translate", target=target_language) from e
        except httpx.HTTPStatusError as e:
            log.error(f"[DEEPL] HTTP {e.response.status_code}: {e.response.text[:200]}")
            raise UpstreamServiceError(
                "translation service returned an error", "translate",
                target=target_language, status=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            log.error(f"[DEEPL] request failed: {describe(e)}")
            raise UpstreamServiceError(
                "translation service call failed", "translate", target=target_language, cause=describe(e)
            ) from e
        except ValueError as e:
            raise ValidationFailed("translation response is not JSON", "translate", target=target_language) from e

        translations = body.get("translations") if isinstance(body, dict) else None
        if not isinstance(translations, list) or len(translations) != len(texts):
            raise ValidationFailed(
                "translation response does not match the request", "translate",
                target=target_language, expected=len(texts),
            )

        results = []
        for original, item in zip(texts, translations):
            billed = item.get("billed_characters")
            results.append(
                TranslatedText(
                    text=item.get("text", ""),
                    billed_characters=int(billed) if billed is not None else len(original),
                    detected_source_language=item.get("detected_source_language"),
                )
            )
        return results

    async def translate(
        self, text: str, target_language: str, source_language: Optional[str] = None
    ) -> TranslatedText:
        return (await self.translate_texts([text], target_language, source_language))[0]
