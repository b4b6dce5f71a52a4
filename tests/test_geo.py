import math
import pytest
from proximity_notifier.services.geo import bounding_box, distance_km, EARTH_RADIUS_KM
from conftest import LONDON_EVENT_COORDS, MANCHESTER_COORDS


def test_one_degree_of_latitude():
    assert distance_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(EARTH_RADIUS_KM * math.pi / 180, rel=1e-9)


def test_quarter_of_the_equator():
    assert distance_km(0.0, 0.0, 0.0, 90.0) == pytest.approx(EARTH_RADIUS_KM * math.pi / 2, rel=1e-9)


def test_antipodal_points_do_not_overflow():
    assert distance_km(0.0, 0.0, 0.0, 180.0) == pytest.approx(EARTH_RADIUS_KM * math.pi, rel=1e-9)


def test_london_to_bedford_reference_distance():
    assert distance_km(51.5074, -0.1278, 52.1332, -0.4697) == pytest.approx(73.45, rel=1e-3)


def test_london_event_to_manchester():
    d = distance_km(*LONDON_EVENT_COORDS, *MANCHESTER_COORDS)
    assert d == pytest.approx(262, rel=0.01)


def test_symmetric_and_zero_for_same_point():
    a = distance_km(51.5, -0.12, 48.85, 2.35)
    b = distance_km(48.85, 2.35, 51.5, -0.12)
    assert a == pytest.approx(b)
    assert distance_km(51.5, -0.12, 51.5, -0.12) == 0.0


@pytest.mark.parametrize("coords", [
    (None, -0.1, 51.5, -0.1),
    (51.5, None, 51.5, -0.1),
    (51.5, -0.1, None, -0.1),
    (51.5, -0.1, 51.5, None),
])
def test_missing_coordinate_is_unknown(coords):
    assert distance_km(*coords) is None


def test_bounding_box_contains_radius():
    lat, lon, radius = 51.5034, -0.1276, 20.0
    box = bounding_box(lat, lon, radius)
    assert not box.wraps_longitude
    # Points exactly on the radius due north/east must be inside the box.
    north = lat + radius / (EARTH_RADIUS_KM * math.pi / 180)
    assert box.min_lat < lat < north <= box.max_lat + 1e-9
    east_lon = box.max_lon
    assert distance_km(lat, lon, lat, east_lon) >= radius


def test_bounding_box_wraps_antimeridian():
    box = bounding_box(0.0, 179.9, 50.0)
    assert box.wraps_longitude
    assert box.min_lon > box.max_lon
    assert box.max_lon < -179.0


def test_bounding_box_near_pole_covers_all_longitudes():
    box = bounding_box(89.95, 10.0, 20.0)
    assert (box.min_lon, box.max_lon) == (-180.0, 180.0)
