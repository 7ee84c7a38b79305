from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from threat_monitor.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

MAPBOX_PLACES_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"


class MapboxGeocoder:
    """Forward and reverse geocoding against the Mapbox places API."""

    def __init__(
        self,
        token: str,
        timeout: float = 15.0,
        base_url: str = MAPBOX_PLACES_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.token)

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.token:
            raise UpstreamUnavailable("MAPBOX_TOKEN is not set")
        params = {**params, "access_token": self.token}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(f"{self.base_url}/{path}.json", params=params)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"geocoding request failed: {e}") from e
        if resp.status_code != 200:
            raise UpstreamUnavailable(f"geocoding failed: HTTP {resp.status_code}")
        return resp.json()

    async def forward(self, place_name: str) -> List[Dict[str, Any]]:
        data = await self._get(
            quote(place_name, safe=""),
            {"limit": 1, "types": "place,region,country"},
        )
        return list(data.get("features") or [])

    async def reverse_country(self, lng: float, lat: float) -> Optional[str]:
        data = await self._get(f"{lng},{lat}", {"types": "country", "limit": 1})
        features = data.get("features") or []
        if not features:
            return None
        return features[0].get("text") or None
