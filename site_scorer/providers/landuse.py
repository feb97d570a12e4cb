"""
Land-use (zoning) layer client.
"""

from __future__ import annotations

from typing import Any, Optional

from site_scorer.providers.base import (
    ProviderClient,
    features_of,
    layer_query_url,
    polygon_query_params,
)


class LandUseClient(ProviderClient):
    name = "landuse"

    def __init__(self, http, policy=None, layer_url: str = "") -> None:
        super().__init__(http, policy)
        self.layer_url = layer_url

    async def query_polygon(
        self, ring: list[list[float]], token: Optional[str]
    ) -> Optional[dict[str, Any]]:
        """Attributes of the first land-use feature intersecting ``ring``.

        Returns ``None`` when the layer has no intersecting feature.
        """
        payload = await self.request_json(
            "POST",
            layer_query_url(self.layer_url),
            data=polygon_query_params(ring, wkid=4326),
            token=token,
        )
        for feature in features_of(payload):
            attrs = feature.get("attributes")
            if isinstance(attrs, dict):
                return attrs
        return None
