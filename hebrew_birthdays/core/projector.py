"""Projection of a Hebrew anniversary onto future Gregorian dates."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date
from typing import Dict, List, Optional, Union

from ..config import PROJECTION_HORIZON_YEARS, PROJECTION_MAX_WORKERS
from .calendar_dates import local_today, to_date
from .exceptions import ConversionError
from .hebcal_client import HebcalClient
from .models import HebrewOccurrence

logger = logging.getLogger(__name__)


class HebrewBirthdayProjector:
    """Resolve the upcoming Gregorian dates of a fixed Hebrew (month, day)."""

    def __init__(
        self,
        hebcal_client: HebcalClient,
        horizon_years: int = PROJECTION_HORIZON_YEARS,
        max_workers: int = PROJECTION_MAX_WORKERS,
    ):
        self.hebcal = hebcal_client
        self.horizon_years = horizon_years
        self.max_workers = max(1, max_workers)

    def project_future_occurrences(
        self,
        start_hebrew_year: int,
        hebrew_month: str,
        hebrew_day: int,
        horizon_years: Optional[int] = None,
        reference_date: Optional[Union[date, str]] = None,
    ) -> List[HebrewOccurrence]:
        """
        Project a Hebrew anniversary over `horizon_years + 1` Hebrew years.

        One converter call is issued per year, concurrently. Years whose call
        fails are logged and dropped; dates before `reference_date` are dropped.
        The survivors come back strictly ascending. An empty list is a valid
        result.

        Args:
            start_hebrew_year: First Hebrew year to resolve (i = 0)
            hebrew_month: Hebcal month token, e.g. "Adar" or "Tishrei"
            hebrew_day: Day of the Hebrew month
            horizon_years: Years ahead of the start year; defaults to the instance horizon
            reference_date: Cut-off day; defaults to today in the calendar timezone

        Returns:
            Ascending list of HebrewOccurrence
        """
        horizon = self.horizon_years if horizon_years is None else horizon_years
        if horizon < 0:
            raise ValueError(f"horizon_years must be >= 0, got {horizon}")

        cutoff = to_date(reference_date) or local_today()
        years = [start_hebrew_year + offset for offset in range(horizon + 1)]

        logger.debug(
            "Projecting %s %s from Hebrew year %s (horizon=%s, cutoff=%s)",
            hebrew_day,
            hebrew_month,
            start_hebrew_year,
            horizon,
            cutoff,
        )

        by_date: Dict[date, HebrewOccurrence] = {}
        failed = 0
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(years))) as pool:
            futures = {
                pool.submit(self.hebcal.hebrew_to_gregorian, year, hebrew_month, hebrew_day): year
                for year in years
            }
            for future in as_completed(futures):
                year = futures[future]
                try:
                    resolved = future.result()
                except ConversionError as exc:
                    failed += 1
                    logger.warning(
                        "Skipping Hebrew year %s for %s %s: %s", year, hebrew_day, hebrew_month, exc
                    )
                    continue

                if resolved < cutoff:
                    continue
                by_date.setdefault(resolved, HebrewOccurrence(gregorian=resolved, hebrew_year=year))

        occurrences = sorted(by_date.values(), key=lambda occurrence: occurrence.gregorian)

        if not occurrences:
            logger.warning(
                "No future occurrences for %s %s from %s (failed=%s/%s)",
                hebrew_day,
                hebrew_month,
                start_hebrew_year,
                failed,
                len(years),
            )
        else:
            logger.info(
                "Projected %d occurrences for %s %s (next=%s, failed=%d)",
                len(occurrences),
                hebrew_day,
                hebrew_month,
                occurrences[0].gregorian,
                failed,
            )
        return occurrences
