"""PDOK WFS client for CBS municipality and neighborhood geography."""

from __future__ import annotations

import logging
from typing import Any
from xml.sax.saxutils import escape

import httpx

from region_ingest.enrichment.models import NeighborhoodGeometry
from region_ingest.http.fetcher import JsonFetcher

logger = logging.getLogger(__name__)

DEFAULT_PDOK_WFS_URL = "https://service.pdok.nl/cbs/wijkenbuurten/2023/wfs/v1_0"
MUNICIPALITIES_TYPE_NAME = "wijkenbuurten:gemeenten"
NEIGHBORHOODS_TYPE_NAME = "wijkenbuurten:buurten"
NEIGHBORHOOD_TYPE = "Buurt"


class PdokGeoClient:
    """Reads municipality names and neighborhood features from PDOK.

    Upstream failures degrade to an empty result and are logged; callers
    treat "nothing found" as a valid outcome.
    """

    def __init__(
        self,
        *,
        wfs_url: str = DEFAULT_PDOK_WFS_URL,
        fetcher: JsonFetcher | None = None,
    ) -> None:
        self.wfs_url = wfs_url
        self._fetcher = fetcher or JsonFetcher()

    def get_all_municipalities(self) -> list[str]:
        payload = self._fetch(_wfs_params(MUNICIPALITIES_TYPE_NAME), scope="municipalities")
        if payload is None:
            return []

        names: set[str] = set()
        for properties in _feature_properties(payload):
            name = properties.get("gemeentenaam")
            if isinstance(name, str) and name.strip():
                names.add(name.strip())
        return sorted(names)

    def get_neighborhoods_by_municipality(self, municipality: str) -> list[NeighborhoodGeometry]:
        if not municipality or not municipality.strip():
            return []

        params = _wfs_params(NEIGHBORHOODS_TYPE_NAME)
        params["FILTER"] = build_municipality_filter(municipality.strip())
        payload = self._fetch(params, scope=f"municipality {municipality!r}")
        if payload is None:
            return []

        results: list[NeighborhoodGeometry] = []
        for properties in _feature_properties(payload):
            code = properties.get("buurtcode")
            if not isinstance(code, str) or not code.strip():
                continue
            name = properties.get("buurtnaam")
            results.append(
                NeighborhoodGeometry(
                    code=code.strip(),
                    name=name.strip() if isinstance(name, str) and name.strip() else "Unknown",
                    neighborhood_type=NEIGHBORHOOD_TYPE,
                ),
            )
        return results

    def close(self) -> None:
        self._fetcher.close()

    def __enter__(self) -> PdokGeoClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _fetch(self, params: dict[str, str], *, scope: str) -> Any | None:
        try:
            return self._fetcher.get_json(self.wfs_url, params=params)
        except httpx.HTTPStatusError as exc:
            logger.error(
                "PDOK WFS failed with status %s for %s",
                exc.response.status_code,
                scope,
            )
        except httpx.HTTPError as exc:
            logger.warning("HTTP request to PDOK WFS failed for %s: %s", scope, exc)
        except ValueError as exc:
            logger.warning("Failed to parse PDOK WFS JSON response for %s: %s", scope, exc)
        return None


def build_municipality_filter(municipality: str) -> str:
    """OGC filter on ``gemeentenaam``; the name is XML-escaped."""

    literal = escape(municipality, {'"': "&quot;", "'": "&apos;"})
    return (
        '<Filter><PropertyIsEqualTo matchCase="false">'
        "<PropertyName>gemeentenaam</PropertyName>"
        f"<Literal>{literal}</Literal>"
        "</PropertyIsEqualTo></Filter>"
    )


def _wfs_params(type_name: str) -> dict[str, str]:
    return {
        "service": "WFS",
        "version": "2.0.0",
        "request": "GetFeature",
        "typeName": type_name,
        "outputFormat": "json",
        "srsName": "EPSG:4326",
    }


def _feature_properties(payload: Any) -> list[dict[str, Any]]:
    if not isinstance(payload, dict):
        return []
    features = payload.get("features")
    if not isinstance(features, list):
        return []
    return [
        feature["properties"]
        for feature in features
        if isinstance(feature, dict) and isinstance(feature.get("properties"), dict)
    ]
