"""
Receipt Extraction Service.

Sends a compressed receipt photo to the Gemini ``generateContent`` REST
endpoint and parses the structured reply into a
:class:`~trackexpense.models.service_models.ReceiptAnalysisResult`.

This service never raises.  A missing API key, a transport error, an HTTP
error status or an unparseable reply all produce
``ReceiptAnalysisResult.fallback()``: blank merchant, today's date, zero
amounts and the ``Miscellaneous`` category.  The user then fills the
draft in by hand.
"""

from __future__ import annotations

import json
import re
from typing import Optional

import httpx
from pydantic import ValidationError

from trackexpense.logger import StructuredLogger
from trackexpense.models.enums import ExpenseCategory
from trackexpense.models.service_models import ReceiptAnalysisResult
from trackexpense.services.base_service import BaseService

GEMINI_ENDPOINT: str = (
    "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
)

_DATA_URI_HEADER = re.compile(r"^data:(image/(?:png|jpeg|jpg|webp));base64,")

_PROMPT: str = (
    "Analyze this receipt image. Extract the merchant name, date, subtotal, "
    "tax, total, and suggest a category ("
    + ", ".join(c.value for c in ExpenseCategory)
    + "). Return the date strictly as YYYY-MM-DD. If a value is not found, "
    "return 0 or an empty string."
)

_RESPONSE_SCHEMA: dict[str, object] = {
    "type": "OBJECT",
    "properties": {
        "merchant": {"type": "STRING"},
        "date": {"type": "STRING"},
        "subtotal": {"type": "NUMBER"},
        "tax": {"type": "NUMBER"},
        "total": {"type": "NUMBER"},
        "category": {"type": "STRING"},
    },
    "required": ["merchant", "total", "category"],
}


class ReceiptExtractionService(BaseService):
    """Client for the receipt field extraction model.

    Parameters
    ----------
    api_key:
        Gemini API key.  Empty disables remote calls.
    model:
        Model name, e.g. ``gemini-2.5-flash``.
    logger:
        Structured logger.
    timeout_s:
        Request timeout.
    http_client:
        Optional pre-built ``httpx.Client`` (tests inject a mock transport).
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        logger: StructuredLogger,
        timeout_s: float = 30.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(logger)
        self._api_key = api_key
        self._model = model
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout_s)

    def analyze(self, image: str) -> ReceiptAnalysisResult:
        """Extract receipt fields from a ``data:`` URI or bare base64 JPEG."""
        if not self._api_key:
            self._logger.warning("Receipt extraction skipped: no API key configured.")
            return ReceiptAnalysisResult.fallback()

        mime_type, data = _split_data_uri(image)
        payload = {
            "contents": [
                {
                    "parts": [
                        {"inline_data": {"mime_type": mime_type, "data": data}},
                        {"text": _PROMPT},
                    ]
                }
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": _RESPONSE_SCHEMA,
            },
        }

        try:
            response = self._client.post(
                GEMINI_ENDPOINT.format(model=self._model),
                headers={"x-goog-api-key": self._api_key},
                json=payload,
            )
            response.raise_for_status()
            text = response.json()["candidates"][0]["content"]["parts"][0]["text"]
            result = ReceiptAnalysisResult.model_validate(json.loads(text))
        except httpx.HTTPError as exc:
            self._logger.error("Receipt extraction request failed: %s", exc)
            return ReceiptAnalysisResult.fallback()
        except (KeyError, IndexError, TypeError, ValueError, ValidationError) as exc:
            self._logger.error("Receipt extraction reply could not be parsed: %s", exc)
            return ReceiptAnalysisResult.fallback()

        self._logger.info(
            "Receipt extracted: merchant=%r total=%s category=%s",
            result.merchant, result.total, result.category,
        )
        return result

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


def _split_data_uri(image: str) -> tuple[str, str]:
    match = _DATA_URI_HEADER.match(image)
    if match is None:
        return "image/jpeg", image
    mime_type = match.group(1).replace("image/jpg", "image/jpeg")
    return mime_type, image[match.end():]
