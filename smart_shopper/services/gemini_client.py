"""
Prediction service client for Google Gemini.

Requests go through the key-injecting proxy (``POST /api/gemini``) as
``{"model": ..., "payload": ...}``. Transient failures are retried with
exponential backoff; anything that still fails degrades to an empty result.
"""

import json
import random
import time
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from ..config import get_config_manager
from ..models import (
    CartSuggestion,
    ExtractedReceiptItem,
    InventoryForecast,
    InventoryItem,
    PredictionResult,
    PurchaseHistoryEntry,
)
from ..utils import get_logger
from .prompts import build_forecast_payload, build_receipt_payload

ModelT = TypeVar("ModelT", bound=BaseModel)

logger = get_logger("gemini_client")


class PredictionServiceError(Exception):
    """Raised when the prediction service answers with a retryable error status."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP error! status: {status_code}")
        self.status_code = status_code


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def fetch_with_retry(
    session: requests.Session,
    url: str,
    body: Dict[str, Any],
    max_retries: int = 5,
    timeout: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> requests.Response:
    """
    POST JSON with exponential backoff on 429/5xx and transport errors.

    Other non-2xx responses are returned to the caller unchanged.

    Args:
        session: HTTP session
        url: Target URL
        body: JSON body
        max_retries: Total number of attempts
        timeout: Per-request timeout in seconds
        sleep: Delay function (injectable for tests)

    Returns:
        The first non-retryable response

    Raises:
        PredictionServiceError: Retryable status on the final attempt
        requests.RequestException: Transport error on the final attempt
    """
    for attempt in range(max_retries):
        try:
            response = session.post(url, json=body, timeout=timeout)
            if is_retryable_status(response.status_code):
                raise PredictionServiceError(response.status_code)
            return response
        except (requests.RequestException, PredictionServiceError) as e:
            if attempt == max_retries - 1:
                raise
            delay = 2 ** attempt + random.random()
            logger.warning(f"Attempt {attempt + 1}/{max_retries} failed ({e}), retrying in {delay:.1f}s")
            sleep(delay)

    raise ValueError("max_retries must be at least 1")


def extract_text(result: Any) -> Optional[str]:
    """Text of the first candidate part of a generateContent response."""
    try:
        return result["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None


def parse_entries(raw: Any, model: Type[ModelT]) -> List[ModelT]:
    """Validate a list of model-output objects, dropping malformed entries."""
    if not isinstance(raw, list):
        return []

    parsed = []
    for entry in raw:
        try:
            parsed.append(model.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Dropping malformed {model.__name__} entry {entry!r}: {e.error_count()} error(s)")
    return parsed


def summarize_inventory(inventory: List[InventoryItem]) -> List[Dict[str, Any]]:
    return [
        {
            "name": item.name,
            "quantity": item.quantity,
            "unit": item.unit,
            "lastUsed": item.last_used.date().isoformat() if item.last_used else "N/A",
        }
        for item in inventory
        if item.name
    ]


def summarize_history(history: List[PurchaseHistoryEntry]) -> List[Dict[str, Any]]:
    return [
        {
            "item": entry.item,
            "quantity": entry.quantity,
            "date": entry.date.date().isoformat(),
            "vendor": entry.vendor,
        }
        for entry in history
        if entry.item
    ]


class GeminiClient:
    """Client for receipt extraction and inventory forecasting."""

    def __init__(
        self,
        proxy_url: Optional[str] = None,
        model: Optional[str] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize Gemini client.

        Args:
            proxy_url: URL of the key-injecting proxy (defaults to ``llm.proxy_url``)
            model: Gemini model name (defaults to ``llm.model``)
            max_retries: Attempts per request (defaults to ``llm.max_retries``)
            timeout: Per-request timeout (defaults to ``llm.timeout_seconds``)
            session: Optional requests session
            sleep: Backoff delay function
        """
        config = get_config_manager()
        self.proxy_url = proxy_url or config.get("llm.proxy_url", "http://localhost:8000/api/gemini")
        self.model = model or config.get("llm.model", "gemini-2.5-flash-preview-09-2025")
        self.max_retries = max_retries or config.get("llm.max_retries", 5)
        self.timeout = timeout or config.get("llm.timeout_seconds", 60)
        self.session = session or requests.Session()
        self.sleep = sleep

    def generate(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send a generateContent payload through the proxy.

        Returns:
            Decoded JSON body of the provider response
        """
        response = fetch_with_retry(
            self.session,
            self.proxy_url,
            {"model": self.model, "payload": payload},
            max_retries=self.max_retries,
            timeout=self.timeout,
            sleep=self.sleep,
        )
        if not response.ok:
            logger.warning(f"Prediction service returned status {response.status_code}")
        return response.json()

    def _generate_json(self, payload: Dict[str, Any]) -> Any:
        text = extract_text(self.generate(payload))
        if not text:
            return None
        return json.loads(text)

    def extract_receipt_items(self, base64_image: str, mime_type: str) -> List[ExtractedReceiptItem]:
        """
        Extract purchased line items from a receipt image.

        Args:
            base64_image: Base64-encoded image bytes
            mime_type: Image MIME type

        Returns:
            Extracted items (empty on any failure)
        """
        try:
            data = self._generate_json(build_receipt_payload(base64_image, mime_type))
        except (requests.RequestException, PredictionServiceError, ValueError) as e:
            logger.error(f"LLM Vision Error: {e}")
            return []

        items = parse_entries(data, ExtractedReceiptItem)
        logger.info(f"Extracted {len(items)} items from receipt")
        return items

    def predict(
        self,
        inventory: List[InventoryItem],
        history: List[PurchaseHistoryEntry],
        vendors: Optional[List[str]] = None,
        max_suggestions: int = 5,
    ) -> PredictionResult:
        """
        Forecast run-out dates and suggest purchases.

        Args:
            inventory: Current inventory
            history: Recent purchase history, newest first
            vendors: Allowed vendors offered to the model
            max_suggestions: Upper bound on suggested items

        Returns:
            PredictionResult (empty on any failure)
        """
        payload = build_forecast_payload(
            summarize_inventory(inventory),
            summarize_history(history),
            vendors or [],
            max_suggestions,
        )

        try:
            data = self._generate_json(payload)
        except (requests.RequestException, PredictionServiceError, ValueError) as e:
            logger.error(f"LLM Prediction Error: {e}")
            return PredictionResult()

        if not isinstance(data, dict):
            return PredictionResult()

        result = PredictionResult(
            suggested_cart=parse_entries(data.get("suggestedCart"), CartSuggestion)[:max_suggestions],
            inventory_forecasts=parse_entries(data.get("inventoryForecasts"), InventoryForecast),
        )
        logger.info(
            f"Prediction returned {len(result.inventory_forecasts)} forecasts "
            f"and {len(result.suggested_cart)} suggestions"
        )
        return result
