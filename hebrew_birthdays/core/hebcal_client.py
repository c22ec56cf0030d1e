"""
Hebcal converter API client for Gregorian <-> Hebrew date conversion.
"""

import logging
from datetime import date
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import (
    HEBCAL_API_URL,
    HEBCAL_LANGUAGE,
    HEBCAL_MAX_RETRIES,
    HEBCAL_TIMEOUT_SECONDS,
)
from .calendar_dates import local_today
from .exceptions import ConversionMalformed, ConversionUnavailable
from .models import HebrewDateResult

logger = logging.getLogger(__name__)


class HebcalClient:
    """Stateless client for the Hebcal `/converter` endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize Hebcal client.

        Args:
            base_url: Converter endpoint. Defaults to HEBCAL_API_URL.
            language: Hebcal `lg` hint for the display string.
            timeout: Per-request timeout in seconds.
            max_retries: Retries for 429/5xx responses on the default session.
            session: Pre-built session (tests inject a stub here).
        """
        self.base_url = base_url or HEBCAL_API_URL
        self.language = language or HEBCAL_LANGUAGE
        self.timeout = timeout if timeout is not None else HEBCAL_TIMEOUT_SECONDS

        if session is None:
            session = requests.Session()
            retry_strategy = Retry(
                total=HEBCAL_MAX_RETRIES if max_retries is None else max_retries,
                backoff_factor=0.5,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["GET"],
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self.session = session

    def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Issue one converter request and return the decoded JSON object.

        Raises:
            ConversionUnavailable: transport error or non-2xx status
            ConversionMalformed: body is not a JSON object or reports an error
        """
        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("Hebcal request failed %s: %s", params, e)
            raise ConversionUnavailable(f"Hebcal API error: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error("Hebcal returned non-JSON body for %s: %s", params, e)
            raise ConversionMalformed("Hebcal returned a non-JSON body") from e

        if not isinstance(data, dict):
            raise ConversionMalformed(f"Unexpected Hebcal payload type: {type(data).__name__}")
        if data.get("error"):
            logger.error("Hebcal rejected %s: %s", params, data["error"])
            raise ConversionMalformed(f"Hebcal error: {data['error']}")
        return data

    def gregorian_to_hebrew(self, gregorian_date: date, after_sunset: bool = False) -> HebrewDateResult:
        """
        Convert a Gregorian date to its Hebrew date.

        Args:
            gregorian_date: Birth date
            after_sunset: Birth happened after local sunset, so the Hebrew day
                is the following one

        Returns:
            HebrewDateResult with display string and y/m/d components
        """
        params: Dict[str, Any] = {
            "cfg": "json",
            "gy": gregorian_date.year,
            "gm": gregorian_date.month,
            "gd": gregorian_date.day,
            "g2h": 1,
            "lg": self.language,
        }
        if after_sunset:
            params["gs"] = "on"

        data = self._get(params)

        hebrew = data.get("hebrew")
        if not hebrew:
            raise ConversionMalformed("No Hebrew date returned from Hebcal")

        hy, hm, hd = data.get("hy"), data.get("hm"), data.get("hd")
        if not (hy and hm and hd):
            raise ConversionMalformed(f"Hebcal response for {gregorian_date} lacks hy/hm/hd")

        try:
            return HebrewDateResult(
                hebrew_date_string=hebrew,
                hebrew_year=hy,
                hebrew_month=hm,
                hebrew_day=hd,
            )
        except ValueError as e:
            raise ConversionMalformed(f"Invalid Hebrew date from Hebcal: {e}") from e

    def hebrew_to_gregorian(self, hebrew_year: int, hebrew_month: str, hebrew_day: int) -> date:
        """Resolve the Gregorian date of a Hebrew (year, month, day)."""
        params = {
            "cfg": "json",
            "hy": hebrew_year,
            "hm": hebrew_month,
            "hd": hebrew_day,
            "h2g": 1,
        }
        data = self._get(params)

        gy, gm, gd = data.get("gy"), data.get("gm"), data.get("gd")
        if not (gy and gm and gd):
            raise ConversionMalformed(
                f"Hebcal response for {hebrew_day} {hebrew_month} {hebrew_year} lacks gy/gm/gd"
            )
        try:
            return date(int(gy), int(gm), int(gd))
        except (TypeError, ValueError) as e:
            raise ConversionMalformed(f"Invalid Gregorian date from Hebcal: {gy}-{gm}-{gd}") from e

    def current_hebrew_year(self, today: Optional[date] = None) -> int:
        """Hebrew year of `today` (calendar timezone when omitted)."""
        return self.gregorian_to_hebrew(today or local_today()).hebrew_year

    def test_connection(self) -> bool:
        """
        Test the API by converting today's date.

        Returns:
            True if the converter answered with a Hebrew date, False otherwise
        """
        try:
            year = self.current_hebrew_year()
            logger.info(f"Hebcal reachable, current Hebrew year {year}")
            return True
        except Exception as e:
            logger.error(f"Hebcal connection test failed: {e}")
            return False
