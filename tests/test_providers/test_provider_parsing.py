"""
Tests for response parsing and request shaping in the provider clients.

What we test
------------
enrichment : TOTPOP_CY from the documented path, from a nested fallback,
             numeric strings, and None when absent or non-numeric.
places     : coordinates from location / geometry / attributes; bad results
             dropped; non-list results rejected; category id lookup.
facilities : x/y and multipoint geometries; any declared wkid (Web
             Mercator, a national RSO grid) reprojected to lon/lat; unknown
             wkids rejected; magnitude guess only without a wkid;
             polygon-then-buffer fallback.
hazard     : rings are sent in each layer's own wkid; flood area summed.
landuse    : first feature's attributes, None when nothing intersects.
"""

from __future__ import annotations

import asyncio
import json
from urllib.parse import parse_qs

import httpx
import pytest

from conftest import mock_client
from site_scorer.geometry.projection import haversine_m, project_point
from site_scorer.models.hexagon import LonLat
from site_scorer.providers.base import ProviderError, RetryPolicy
from site_scorer.providers.enrichment import PopulationEnrichmentClient, extract_total_population
from site_scorer.providers.facilities import FacilitiesClient, parse_facility_points
from site_scorer.providers.hazard import HazardClient, HazardLayer
from site_scorer.providers.landuse import LandUseClient
from site_scorer.providers.places import PlacesClient, parse_place_points

FAST = RetryPolicy(timeout_s=1.0, max_retries=0, retry_delay_s=0.0)
RING = [[101.71, 3.15], [101.72, 3.15], [101.72, 3.16], [101.71, 3.16], [101.71, 3.15]]


def _form(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


class TestEnrichmentParsing:
    def test_documented_path(self):
        payload = {"results": [{"value": {"FeatureSet": [
            {"features": [{"attributes": {"TOTPOP_CY": 1234}}]}
        ]}}]}
        assert extract_total_population(payload) == 1234.0

    def test_nested_fallback(self):
        payload = {"data": {"deep": [{"x": 1}, {"stats": {"TOTPOP_CY": "88"}}]}}
        assert extract_total_population(payload) == 88.0

    def test_zero_population_is_zero(self):
        payload = {"results": [{"value": {"FeatureSet": {"features": [
            {"attributes": {"TOTPOP_CY": 0}}
        ]}}}]}
        assert extract_total_population(payload) == 0.0

    @pytest.mark.parametrize("payload", [{}, {"results": []}, {"x": {"TOTPOP_CY": "n/a"}},
                                         {"x": {"TOTPOP_CY": None}}])
    def test_absent(self, payload):
        assert extract_total_population(payload) is None

    def test_client_posts_study_area(self):
        seen = []

        def handler(request):
            seen.append(_form(request))
            return httpx.Response(200, json={"results": [{"value": {"FeatureSet": [
                {"features": [{"attributes": {"TOTPOP_CY": 500}}]}]}}]})

        async def main():
            async with mock_client(handler) as http:
                client = PopulationEnrichmentClient(http, FAST, url="https://enrich.test")
                return await client.query(RING, "tok", country="MY")

        assert asyncio.run(main()) == 500.0
        form = seen[0]
        assert form["token"] == "tok"
        assert json.loads(form["useData"]) == {"sourceCountry": "MY"}
        assert json.loads(form["studyAreas"])[0]["geometry"]["rings"] == [RING]


class TestPlaces:
    def test_parse_points(self):
        payload = {"results": [
            {"location": {"x": 101.7, "y": 3.1}},
            {"geometry": {"x": 101.8, "y": 3.2}},
            {"attributes": {"x": "101.9", "y": "3.3"}},
            {"name": "no coords"},
            "garbage",
        ]}
        assert parse_place_points(payload) == [
            LonLat(lon=101.7, lat=3.1), LonLat(lon=101.8, lat=3.2), LonLat(lon=101.9, lat=3.3),
        ]

    def test_non_list_rejected(self):
        with pytest.raises(ValueError):
            parse_place_points({"results": {"a": 1}})

    def test_resolve_category_ids_top_ten(self):
        cats = [{"categoryId": f"c{i}"} for i in range(12)] + [{"id": "late"}]

        async def main():
            async with mock_client(lambda r: httpx.Response(200, json={"categories": cats})) as http:
                return await PlacesClient(http, FAST, base_url="https://places.test").resolve_category_ids("Retail", "t")

        assert asyncio.run(main()) == [f"c{i}" for i in range(10)]

    def test_query_extent_params(self):
        seen = []

        def handler(request):
            seen.append(request.url)
            return httpx.Response(200, json={"results": []})

        async def main():
            async with mock_client(handler) as http:
                client = PlacesClient(http, FAST, base_url="https://places.test/")
                return await client.query_extent((1.0, 2.0, 3.0, 4.0), ("a", "b"), "t")

        assert asyncio.run(main()) == []
        url = seen[0]
        assert url.path.endswith("/places/within-extent")
        assert url.params["categoryIds"] == "a,b"
        assert url.params["xmax"] == "3.0"


class TestFacilities:
    def test_parse_web_mercator_from_response_sr(self):
        x, y = project_point(101.7, 3.1, 3857)
        payload = {"spatialReference": {"wkid": 102100, "latestWkid": 3857},
                   "features": [{"geometry": {"x": x, "y": y}}]}
        [pt] = parse_facility_points(payload)
        assert pt.lon == pytest.approx(101.7)
        assert pt.lat == pytest.approx(3.1)

    def test_parse_declared_national_grid(self):
        x, y = project_point(101.7, 3.15, 3375)
        assert abs(x) > 1000 and abs(y) > 1000
        payload = {"spatialReference": {"wkid": 3375},
                   "features": [{"geometry": {"x": x, "y": y}}]}
        [pt] = parse_facility_points(payload)
        assert pt.lon == pytest.approx(101.7, abs=1e-6)
        assert pt.lat == pytest.approx(3.15, abs=1e-6)

    def test_geometry_wkid_overrides_response_wkid(self):
        x, y = project_point(101.7, 3.15, 3375)
        payload = {"spatialReference": {"wkid": 3857},
                   "features": [{"geometry": {"x": x, "y": y, "spatialReference": {"wkid": 3375}}}]}
        [pt] = parse_facility_points(payload)
        assert pt.lon == pytest.approx(101.7, abs=1e-6)

    def test_parse_unknown_wkid_raises(self):
        payload = {"spatialReference": {"wkid": 999999},
                   "features": [{"geometry": {"x": 412345.0, "y": 349000.0}}]}
        with pytest.raises(ValueError, match="wkid=999999"):
            parse_facility_points(payload)

    def test_parse_meters_without_wkid_read_as_web_mercator(self):
        x, y = project_point(101.7, 3.1, 3857)
        [pt] = parse_facility_points({"features": [{"geometry": {"x": x, "y": y}}]})
        assert pt.lon == pytest.approx(101.7)
        assert pt.lat == pytest.approx(3.1)

    def test_national_grid_layer_gives_near_distance(self):
        centroid = LonLat(lon=101.715, lat=3.155)
        x, y = project_point(101.7151, 3.155, 3375)

        def handler(request):
            return httpx.Response(200, json={
                "spatialReference": {"wkid": 3375},
                "features": [{"geometry": {"x": x, "y": y}}],
            })

        async def main():
            async with mock_client(handler) as http:
                client = FacilitiesClient(http, FAST, layer_url="https://fac.test/0")
                return await client.query_polygon_or_buffered_point(RING, centroid, None)

        [pt] = asyncio.run(main()).points
        assert haversine_m(centroid.lon, centroid.lat, pt.lon, pt.lat) == pytest.approx(11.1, abs=0.5)

    def test_parse_multipoint_first_point(self):
        payload = {"features": [{"geometry": {"points": [[101.7, 3.1], [101.8, 3.2]]}},
                                {"geometry": {}}]}
        assert parse_facility_points(payload) == [LonLat(lon=101.7, lat=3.1)]

    def test_buffer_fallback_when_polygon_empty(self):
        kinds = []

        def handler(request):
            form = _form(request)
            kinds.append(form["geometryType"])
            if form["geometryType"] == "esriGeometryPolygon":
                return httpx.Response(200, json={"features": []})
            return httpx.Response(200, json={"features": [{"geometry": {"x": 101.7151, "y": 3.155}}]})

        async def main():
            async with mock_client(handler) as http:
                client = FacilitiesClient(http, FAST, layer_url="https://fac.test/0")
                return await client.query_polygon_or_buffered_point(
                    RING, LonLat(lon=101.715, lat=3.155), "t", buffer_m=1000
                )

        result = asyncio.run(main())
        assert kinds == ["esriGeometryPolygon", "esriGeometryPoint"]
        assert result.used_buffer
        assert len(result.points) == 1

    def test_polygon_hit_skips_buffer(self):
        kinds = []

        def handler(request):
            kinds.append(_form(request)["geometryType"])
            return httpx.Response(200, json={"features": [{"geometry": {"x": 101.715, "y": 3.155}}]})

        async def main():
            async with mock_client(handler) as http:
                client = FacilitiesClient(http, FAST, layer_url="https://fac.test/0")
                return await client.query_polygon_or_buffered_point(RING, LonLat(lon=101.715, lat=3.155), None)

        result = asyncio.run(main())
        assert kinds == ["esriGeometryPolygon"]
        assert not result.used_buffer

    def test_buffer_failure_raises(self):
        async def main():
            async with mock_client(lambda r: httpx.Response(502)) as http:
                client = FacilitiesClient(http, FAST, layer_url="https://fac.test/0")
                return await client.query_polygon_or_buffered_point(RING, LonLat(lon=101.715, lat=3.155), None)

        with pytest.raises(ProviderError):
            asyncio.run(main())


class TestHazard:
    def test_projected_query_and_area(self):
        seen = []

        def handler(request):
            seen.append((request.url.path, _form(request)))
            return httpx.Response(200, json={"features": [
                {"attributes": {"Area_Ha": 1.5}}, {"attributes": {"area_ha": "2.5"}},
            ]})

        async def main():
            async with mock_client(handler) as http:
                client = HazardClient(http, FAST, flood_url="https://h.test/flood/0",
                                      landslide_url="https://h.test/slide/0")
                return await client.query_polygon(RING, HazardLayer.FLOOD, "t")

        result = asyncio.run(main())
        assert result.count == 2
        assert result.intersects
        assert result.total_area_ha == pytest.approx(4.0)
        path, form = seen[0]
        assert path == "/flood/0/query"
        assert form["inSR"] == "3857"
        ring = json.loads(form["geometry"])["rings"][0]
        assert ring[0][0] == pytest.approx(project_point(*RING[0], 3857)[0])

    def test_each_layer_uses_its_own_wkid(self):
        forms = {}

        def handler(request):
            forms[request.url.path] = _form(request)
            return httpx.Response(200, json={"features": []})

        async def main():
            async with mock_client(handler) as http:
                client = HazardClient(http, FAST, flood_url="https://h.test/flood/0",
                                      landslide_url="https://h.test/slide/0",
                                      flood_wkid=3375, landslide_wkid=3857)
                await client.query_polygon(RING, HazardLayer.FLOOD, None)
                await client.query_polygon(RING, HazardLayer.LANDSLIDE, None)

        asyncio.run(main())
        flood = forms["/flood/0/query"]
        slide = forms["/slide/0/query"]
        assert (flood["inSR"], slide["inSR"]) == ("3375", "3857")
        flood_ring = json.loads(flood["geometry"])["rings"][0]
        assert flood_ring[0] == pytest.approx(list(project_point(*RING[0], 3375)))
        assert json.loads(flood["geometry"])["spatialReference"] == {"wkid": 3375}

    def test_unknown_layer_wkid_raises(self):
        async def main():
            async with mock_client(lambda r: httpx.Response(200, json={"features": []})) as http:
                client = HazardClient(http, FAST, flood_url="https://h.test/f", flood_wkid=999999)
                return await client.query_polygon(RING, HazardLayer.FLOOD, None)

        with pytest.raises(ValueError, match="wkid=999999"):
            asyncio.run(main())

    def test_no_features(self):
        async def main():
            async with mock_client(lambda r: httpx.Response(200, json={"features": []})) as http:
                client = HazardClient(http, FAST, flood_url="https://h.test/f", landslide_url="https://h.test/l")
                return await client.query_polygon(RING, HazardLayer.LANDSLIDE, None)

        result = asyncio.run(main())
        assert not result.intersects
        assert result.total_area_ha == 0.0


class TestLandUse:
    def test_first_feature_attributes(self):
        payload = {"features": [{"attributes": {"LU_NAME": "Komersial"}}, {"attributes": {"LU_NAME": "Hutan"}}]}

        async def main():
            async with mock_client(lambda r: httpx.Response(200, json=payload)) as http:
                return await LandUseClient(http, FAST, layer_url="https://lu.test/0").query_polygon(RING, None)

        assert asyncio.run(main()) == {"LU_NAME": "Komersial"}

    def test_none_when_nothing_intersects(self):
        async def main():
            async with mock_client(lambda r: httpx.Response(200, json={"features": []})) as http:
                return await LandUseClient(http, FAST, layer_url="https://lu.test/0").query_polygon(RING, None)

        assert asyncio.run(main()) is None
