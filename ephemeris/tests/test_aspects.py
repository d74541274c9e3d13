"""Tests for aspect detection."""

from ephemeris.aspects import _is_applying, angular_distance, classify, find_aspects, orb_limit
from lunary.schemas.chart import PlanetPlacement
from lunary.services.astro_settings import build_astro_settings


def test_angular_distance():
    """Test angular distance calculation."""
    assert angular_distance(0, 90) == 90.0
    assert angular_distance(90, 0) == 90.0
    assert angular_distance(0, 180) == 180.0
    assert angular_distance(350, 10) == 20.0
    assert angular_distance(10, 350) == 20.0
    assert abs(angular_distance(0, 0) - 0.0) < 0.001


def test_angular_distance_wraparound():
    """Test angular distance handles wraparound correctly."""
    assert abs(angular_distance(355, 5) - 10.0) < 0.001
    assert abs(angular_distance(1, 359) - 2.0) < 0.001


def test_classify_exact_trine():
    hit = classify(0.0, 120.0)
    assert hit is not None
    assert hit.aspect_type == "trine"
    assert hit.exact_angle == 120.0
    assert hit.orb == 0.0
    assert hit.significance == "major"
    assert hit.body_a is None and hit.body_b is None


def test_classify_orb_matches_separation():
    hit = classify(10.0, 105.5)
    assert hit.aspect_type == "square"
    assert hit.separation == 95.5
    assert abs(abs(hit.separation - hit.exact_angle) - hit.orb) < 1e-9


def test_classify_across_zero_aries():
    hit = classify(355.0, 5.0)
    assert hit.aspect_type == "conjunction"
    assert hit.orb == 10.0


def test_classify_out_of_orb_returns_none():
    # 30 degrees sits between conjunction and semisquare orbs
    assert classify(0.0, 30.0) is None
    assert classify(0.0, 50.0) is None


def test_classify_is_symmetric():
    longitudes = [0.0, 7.5, 44.0, 59.9, 91.3, 121.0, 149.0, 180.0, 222.2, 301.7, 359.9]
    for lon_a in longitudes:
        for lon_b in longitudes:
            assert classify(lon_a, lon_b) == classify(lon_b, lon_a)


def test_classify_is_deterministic():
    assert classify(12.34, 192.0, body_a="sun", body_b="saturn") == classify(
        12.34, 192.0, body_a="sun", body_b="saturn"
    )


def test_body_modifiers_narrow_outer_planet_orbs():
    # Luminaries keep the full 10 degree conjunction orb
    assert classify(0.0, 9.0, body_a="sun", body_b="moon") is not None
    # Uranus/Pluto get 10 * 0.6 = 6
    assert classify(0.0, 9.0, body_a="uranus", body_b="pluto") is None
    assert abs(orb_limit("conjunction", "uranus", "pluto") - 6.0) < 1e-9


def test_orb_factor_scales_limit():
    assert classify(0.0, 9.0) is not None
    assert classify(0.0, 9.0, orb_factor=0.8) is None


def test_body_modifiers_can_be_disabled():
    settings = build_astro_settings({"aspects": {"use_body_modifiers": False}})
    assert classify(0.0, 9.0, body_a="uranus", body_b="pluto", settings=settings) is not None


def test_find_aspects_with_known_positions():
    """Test aspect detection with known positions."""
    placements = [
        PlanetPlacement(body="sun", longitude=324.0, speed_deg_day=1.0),
        PlanetPlacement(body="moon", longitude=228.0, speed_deg_day=13.0),
        PlanetPlacement(body="mars", longitude=112.0, speed_deg_day=0.6),
        PlanetPlacement(body="saturn", longitude=355.0, speed_deg_day=0.05),
    ]

    aspects = find_aspects(placements)

    pairs = {(a.body_a, a.body_b, a.aspect_type) for a in aspects}
    # 324 - 228 = 96: square within the Sun/Moon orb
    assert ("sun", "moon", "square") in pairs
    for a in aspects:
        assert a.orb >= 0
    significance = [a.significance for a in aspects]
    assert significance == sorted(significance, key=["major", "moderate", "minor"].index)


def test_find_aspects_marks_applying():
    placements = [
        PlanetPlacement(body="moon", longitude=95.0, speed_deg_day=13.0),
        PlanetPlacement(body="saturn", longitude=100.0, speed_deg_day=0.05),
    ]
    [hit] = find_aspects(placements)
    assert hit.aspect_type == "conjunction"
    assert hit.is_applying is True


def test_is_applying():
    """Test applying/separating detection."""
    # Faster body approaching slower body from behind
    assert _is_applying(100.0, 110.0, 1.0, 0.1, 0.0) is True

    # Bodies moving apart
    assert _is_applying(100.0, 110.0, -1.0, 1.0, 0.0) is False
