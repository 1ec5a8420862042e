"""NHTSA recall lookups by make, model and year."""

import logging
from typing import Optional, List, Dict, Tuple

import httpx
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class Recall(BaseModel):
    """One NHTSA recall campaign."""

    campaign_number: str = Field(default="")
    report_received_date: str = Field(default="")
    component: str = Field(default="")
    summary: str = Field(default="")
    consequence: str = Field(default="")
    remedy: str = Field(default="")
    manufacturer: str = Field(default="")

    def __str__(self) -> str:
        if self.component:
            return f"{self.campaign_number}: {self.component}"
        return self.campaign_number


class RecallLookup:
    """Queries the NHTSA recalls API. Failures yield an empty list."""

    NHTSA_RECALLS_URL = "https://api.nhtsa.gov/recalls/recallsByVehicle"

    def __init__(self, timeout: float = 8.0, use_cache: bool = True, client: Optional[httpx.Client] = None):
        """
        Args:
            timeout: Request timeout in seconds
            use_cache: Keep results per make/model/year for the process lifetime
            client: Optional preconfigured httpx client
        """
        self._timeout = timeout
        self._use_cache = use_cache
        self._client = client
        self._cache: Dict[Tuple[str, str, int], List[Recall]] = {}

    def lookup(self, make: str, model: str, year: Optional[int], timeout: Optional[float] = None) -> List[Recall]:
        """
        Recalls for a vehicle.

        Args:
            make: Vehicle make
            model: Vehicle model
            year: Model year; no lookup is made without one
            timeout: Overrides the configured timeout for this call

        Returns:
            List of recalls, empty if none were found or the lookup failed
        """
        if not make or not model or not year:
            return []

        cache_key = (make.lower(), model.lower(), year)
        if self._use_cache and cache_key in self._cache:
            return list(self._cache[cache_key])

        params = {"make": make, "model": model, "modelYear": str(year)}
        try:
            if self._client is not None:
                response = self._client.get(self.NHTSA_RECALLS_URL, params=params,
                                            timeout=timeout or self._timeout)
            else:
                with httpx.Client(timeout=timeout or self._timeout) as client:
                    response = client.get(self.NHTSA_RECALLS_URL, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException:
            logger.warning("NHTSA recall API timeout")
            return []
        except httpx.HTTPError as e:
            logger.warning(f"NHTSA recall API error: {e}")
            return []
        except ValueError as e:
            logger.warning(f"NHTSA recall API returned invalid JSON: {e}")
            return []

        if not isinstance(data, dict):
            logger.warning(f"NHTSA recall API returned {type(data).__name__}, expected an object")
            return []

        results = data.get("results") or []
        recalls = [self._parse(item) for item in results if isinstance(item, dict)]
        if self._use_cache:
            self._cache[cache_key] = recalls

        logger.debug(f"Found {len(recalls)} recalls for {year} {make} {model}")
        return list(recalls)

    @staticmethod
    def _parse(item: Dict) -> Recall:
        return Recall(
            campaign_number=item.get("NHTSACampaignNumber") or "",
            report_received_date=item.get("ReportReceivedDate") or "",
            component=item.get("Component") or "",
            summary=item.get("Summary") or "",
            consequence=item.get("Consequence") or "",
            remedy=item.get("Remedy") or "",
            manufacturer=item.get("Manufacturer") or "",
        )

    def clear_cache(self) -> None:
        self._cache.clear()
