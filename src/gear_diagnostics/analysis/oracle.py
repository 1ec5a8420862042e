"""Reasoning oracle interface and an HTTP implementation."""

import time
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from ..errors import AnalysisUnavailable

logger = logging.getLogger(__name__)


class PromptKind(str, Enum):
    """The two questions the engine asks the oracle."""
    DTC_ANALYSIS = "dtc_analysis"
    SYMPTOM_CHECK = "symptom_check"


class ReasoningOracle(ABC):
    """
    Opaque reasoning service.

    Takes a prompt kind and a structured payload and returns a structured
    dict. Callers validate the shape; implementations only move data.
    """

    @abstractmethod
    def infer(self, prompt_kind: PromptKind, payload: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Run one inference.

        Raises:
            AnalysisUnavailable: The service failed or timed out
        """


class HttpReasoningOracle(ReasoningOracle):
    """Posts ``{"kind", "input"}`` as JSON and expects a JSON object back."""

    RETRY_STATUSES = (429, 503)

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 2,
        retry_base_delay: float = 1.0,
        client: Optional[httpx.Client] = None,
    ):
        self._url = url
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def _headers(self) -> Dict[str, str]:
        headers = {"content-type": "application/json"}
        if self._api_key:
            headers["authorization"] = f"Bearer {self._api_key}"
        return headers

    def infer(self, prompt_kind: PromptKind, payload: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        body = {"kind": prompt_kind.value, "input": payload}

        for attempt in range(self._max_retries + 1):
            try:
                response = self._client.post(
                    self._url,
                    json=body,
                    headers=self._headers(),
                    timeout=timeout or self._timeout,
                )
                response.raise_for_status()
                data = response.json()
                break
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status in self.RETRY_STATUSES and attempt < self._max_retries:
                    delay = self._retry_base_delay * (2 ** attempt)
                    logger.warning(f"Oracle rate limited (status {status}), retry {attempt + 1}/{self._max_retries} in {delay}s")
                    time.sleep(delay)
                    continue
                logger.error(f"Oracle returned status {status} for {prompt_kind.value}")
                raise AnalysisUnavailable(f"Oracle request failed with status {status}") from e
            except httpx.TimeoutException as e:
                logger.error(f"Oracle timeout for {prompt_kind.value}")
                raise AnalysisUnavailable("Oracle request timed out") from e
            except httpx.HTTPError as e:
                logger.error(f"Oracle request error: {e}")
                raise AnalysisUnavailable(f"Oracle request failed: {e}") from e
            except ValueError as e:
                raise AnalysisUnavailable("Oracle returned invalid JSON") from e

        # Some gateways wrap the result
        if isinstance(data, dict) and isinstance(data.get("output"), dict):
            data = data["output"]

        if not isinstance(data, dict):
            raise AnalysisUnavailable("Oracle response is not a JSON object")
        return data
