"""
Tests for site_scorer/geometry/projection.py.

What we test
------------
  - haversine_m on a known one-degree meridian arc.
  - crs_for_wkid: EPSG codes, ESRI-only codes (102100), unknown codes rejected.
  - project_point / unproject_point agree for Web Mercator and a national grid.
  - to_lonlat: any declared wkid is reprojected; the magnitude guess only
    applies without one.
  - project_ring: 4326 passthrough, projected wkids, unknown wkids rejected.
"""

from __future__ import annotations

import pytest

from site_scorer.geometry.projection import (
    crs_for_wkid,
    haversine_m,
    is_likely_web_mercator,
    meters_per_degree_lon,
    project_point,
    project_ring,
    to_lonlat,
    transformer_between,
    unproject_point,
)

KL = (101.7116, 3.1579)


class TestDistances:
    def test_one_degree_of_latitude(self):
        assert haversine_m(101.0, 3.0, 101.0, 4.0) == pytest.approx(111_195, rel=1e-3)

    def test_zero_distance(self):
        assert haversine_m(101.0, 3.0, 101.0, 3.0) == 0.0

    def test_longitude_degree_shrinks_with_latitude(self):
        assert meters_per_degree_lon(60.0) < meters_per_degree_lon(3.0)


class TestCrsResolution:
    def test_epsg_code(self):
        assert crs_for_wkid(3375).to_epsg() == 3375

    def test_esri_alias_of_web_mercator(self):
        x, y = project_point(*KL, 102100)
        assert (x, y) == pytest.approx(project_point(*KL, 3857))

    def test_unknown_wkid(self):
        with pytest.raises(ValueError, match="wkid=999999"):
            crs_for_wkid(999999)

    def test_transformers_cached(self):
        assert transformer_between(4326, 3857) is transformer_between(4326, 3857)


class TestPointTransforms:
    def test_web_mercator_origin(self):
        assert project_point(0.0, 0.0, 3857) == pytest.approx((0.0, 0.0), abs=1e-6)

    def test_web_mercator_known_value(self):
        x, _ = project_point(180.0, 0.0, 3857)
        assert x == pytest.approx(20_037_508.34, abs=0.01)

    @pytest.mark.parametrize("wkid", [3857, 3375])
    def test_inverse(self, wkid):
        x, y = project_point(*KL, wkid)
        lon, lat = unproject_point(x, y, wkid)
        assert lon == pytest.approx(KL[0], abs=1e-7)
        assert lat == pytest.approx(KL[1], abs=1e-7)

    def test_wgs84_passthrough(self):
        assert project_point(*KL, 4326) == KL
        assert unproject_point(*KL, 4326) == KL

    def test_pole_in_web_mercator_rejected(self):
        with pytest.raises(ValueError):
            project_point(0.0, 90.0, 3857)


class TestToLonLat:
    def test_magnitude_heuristic(self):
        assert is_likely_web_mercator(11_322_000.0, 351_000.0)
        assert not is_likely_web_mercator(101.7, 3.1)

    def test_degrees_without_wkid_pass_through(self):
        assert to_lonlat(101.7, 3.1) == (101.7, 3.1)

    def test_meters_without_wkid_read_as_web_mercator(self):
        x, y = project_point(*KL, 3857)
        assert to_lonlat(x, y) == pytest.approx(KL)

    def test_declared_national_grid(self):
        x, y = project_point(*KL, 3375)
        assert to_lonlat(x, y, 3375) == pytest.approx(KL, abs=1e-7)

    def test_declared_wgs84_wins_over_magnitude(self):
        assert to_lonlat(11_322_000.0, 351_000.0, 4326) == (11_322_000.0, 351_000.0)

    def test_declared_unknown_wkid(self):
        with pytest.raises(ValueError):
            to_lonlat(412_345.0, 349_000.0, 999999)


class TestProjectRing:
    RING = [(101.7, 3.1), (101.8, 3.1), (101.8, 3.2), (101.7, 3.1)]

    def test_wgs84_passthrough(self):
        assert project_ring(self.RING, 4326) == [[101.7, 3.1], [101.8, 3.1], [101.8, 3.2], [101.7, 3.1]]

    def test_web_mercator(self):
        projected = project_ring(self.RING, 3857)
        assert len(projected) == 4
        assert projected[0][0] > 1_000_000

    def test_national_grid(self):
        projected = project_ring(self.RING, 3375)
        assert projected[0] == pytest.approx(list(project_point(101.7, 3.1, 3375)))
        assert projected[0] == projected[-1]

    def test_unknown_wkid(self):
        with pytest.raises(ValueError):
            project_ring(self.RING, 999999)
