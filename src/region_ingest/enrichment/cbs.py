"""CBS StatLine OData clients for neighborhood and crime statistics."""

from __future__ import annotations

import logging
import math
from typing import Any

import httpx

from region_ingest.enrichment.models import CrimeStats, NeighborhoodStats
from region_ingest.http.fetcher import JsonFetcher

logger = logging.getLogger(__name__)

DEFAULT_CBS_BASE_URL = "https://opendata.cbs.nl/ODataApi/odata"
NEIGHBORHOOD_STATS_TABLE = "85618NED"
CRIME_STATS_TABLE = "83765NED"
REGION_CODE_WIDTH = 10

_NEIGHBORHOOD_STATS_FIELDS = (
    "WijkenEnBuurten",
    "AantalInwoners_5",
    "Bevolkingsdichtheid_34",
    "GemiddeldeWOZWaardeVanWoningen_36",
)
_CRIME_STATS_FIELDS = (
    "WijkenEnBuurten",
    "AantalInwoners_5",
    "TotaalDiefstalUitWoningSchuurED_106",
    "VernielingMisdrijfTegenOpenbareOrde_107",
    "GeweldsEnSeksueleMisdrijven_108",
)


class _CbsTableClient:
    table_id: str
    fields: tuple[str, ...]

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_CBS_BASE_URL,
        fetcher: JsonFetcher | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._fetcher = fetcher or JsonFetcher()

    def close(self) -> None:
        self._fetcher.close()

    def _fetch_first_row(self, region_code: str) -> dict[str, Any] | None:
        """Return the first row for ``region_code``.

        Non-2xx responses raise ``httpx.HTTPStatusError``; malformed JSON or
        an empty result set yield ``None``.
        """

        if not region_code or not region_code.strip():
            return None
        code = region_code.strip().ljust(REGION_CODE_WIDTH)
        quoted = code.replace("'", "''")
        params = {
            "$filter": f"WijkenEnBuurten eq '{quoted}'",
            "$top": "1",
            "$select": ",".join(self.fields),
        }
        url = f"{self.base_url}/{self.table_id}/TypedDataSet"
        try:
            payload = self._fetcher.get_json(url, params=params)
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "CBS %s lookup failed for region %s with status %s",
                self.table_id,
                code.strip(),
                exc.response.status_code,
            )
            raise
        except ValueError:
            logger.warning(
                "CBS %s lookup returned invalid JSON for region %s",
                self.table_id,
                code.strip(),
            )
            return None

        values = payload.get("value") if isinstance(payload, dict) else None
        if not isinstance(values, list) or not values or not isinstance(values[0], dict):
            return None
        return values[0]


class CbsNeighborhoodStatsClient(_CbsTableClient):
    table_id = NEIGHBORHOOD_STATS_TABLE
    fields = _NEIGHBORHOOD_STATS_FIELDS

    def get_stats(self, region_code: str) -> NeighborhoodStats | None:
        row = self._fetch_first_row(region_code)
        if row is None:
            return None
        return NeighborhoodStats(
            population_density=get_int(row, "Bevolkingsdichtheid_34"),
            average_woz_value_keur=get_float(row, "GemiddeldeWOZWaardeVanWoningen_36"),
        )

    def __enter__(self) -> CbsNeighborhoodStatsClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


class CbsCrimeStatsClient(_CbsTableClient):
    table_id = CRIME_STATS_TABLE
    fields = _CRIME_STATS_FIELDS

    def get_stats(self, region_code: str) -> CrimeStats | None:
        row = self._fetch_first_row(region_code)
        if row is None:
            return None

        residents = get_int(row, "AantalInwoners_5")
        rates = [
            rate_per_1000(get_int(row, field), residents)
            for field in (
                "TotaalDiefstalUitWoningSchuurED_106",
                "VernielingMisdrijfTegenOpenbareOrde_107",
                "GeweldsEnSeksueleMisdrijven_108",
            )
        ]
        known = [rate for rate in rates if rate is not None]
        return CrimeStats(total_crimes_per_1000=sum(known) if known else None)

    def __enter__(self) -> CbsCrimeStatsClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def rate_per_1000(count: int | None, residents: int | None) -> int | None:
    """Scale ``count`` to a rate per 1000 residents, rounding half away from zero.

    Without a usable resident count the raw count is returned.
    """

    if count is None:
        return None
    if residents is None or residents <= 0:
        return count
    scaled = count * 1000 / residents
    return int(math.copysign(math.floor(abs(scaled) + 0.5), scaled))


def get_int(row: dict[str, Any], key: str) -> int | None:
    value = row.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def get_float(row: dict[str, Any], key: str) -> float | None:
    value = row.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None
