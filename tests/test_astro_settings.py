"""Tests for AstroSettings -- defaults, validation, schema, and merging from site_settings."""

import math

import pytest
from lunary.errors import ConfigurationError
from lunary.services.astro_settings import (
    AspectSettings,
    AstroSettings,
    ContextSettings,
    PatternSettings,
    ReturnSettings,
    TransitSettings,
    astro_settings_schema,
    build_astro_settings,
    default_astro_settings,
    load_astro_settings,
    orb_overlaps,
    validate_astro_settings,
)


class FakeRow:
    def __init__(self, key, value):
        self.key = key
        self.value = value
        self.category = "astrology"


# ---------- Default values ----------


class TestAspectSettingsDefaults:
    def test_orbs(self):
        a = AspectSettings()
        assert a.orbs["conjunction"] == 10.0
        assert a.orbs["square"] == 8.0
        assert a.orbs["sextile"] == 6.0
        assert a.orbs["quincunx"] == 3.0

    def test_transit_factor(self):
        assert AspectSettings().transit_orb_factor == 0.8

    def test_defaults_are_independent_copies(self):
        a = AspectSettings()
        a.orbs["conjunction"] = 1.0
        assert AspectSettings().orbs["conjunction"] == 10.0


class TestOtherDefaults:
    def test_patterns(self):
        p = PatternSettings()
        assert p.stellium_min_bodies == 3
        assert p.house_stelliums is True

    def test_returns(self):
        r = ReturnSettings()
        assert r.activity_windows == {"solar": 3, "jupiter": 14, "saturn": 30}
        assert r.exact_days == 1

    def test_transits(self):
        assert TransitSettings().top_n == 3

    def test_context(self):
        c = ContextSettings()
        assert c.token_weights["journal_history"] == 400
        assert sum(c.token_weights.values()) == 1750
        assert c.token_budget is None

    def test_default_settings_are_valid(self):
        assert default_astro_settings() == AstroSettings()


# ---------- Validation ----------


class TestValidation:
    def test_default_orbs_do_not_overlap(self):
        assert orb_overlaps(AspectSettings().orbs) == []

    def test_overlapping_orbs_rejected(self):
        with pytest.raises(ConfigurationError, match="overlap"):
            build_astro_settings({"aspects": {"orbs": {"semisquare": 10.0}}})

    def test_negative_orb_rejected(self):
        with pytest.raises(ConfigurationError, match="positive"):
            build_astro_settings({"aspects": {"orbs": {"trine": -1.0}}})

    def test_non_finite_orb_rejected(self):
        settings = AstroSettings()
        settings.aspects.orbs["trine"] = math.nan
        with pytest.raises(ConfigurationError):
            validate_astro_settings(settings)

    def test_unknown_aspect_rejected(self):
        with pytest.raises(ConfigurationError, match="unknown aspects"):
            build_astro_settings({"aspects": {"orbs": {"septile": 1.0}}})

    def test_negative_weight_rejected(self):
        with pytest.raises(ConfigurationError, match="token weight"):
            build_astro_settings({"context": {"token_weights": {"eclipses": -5}}})

    def test_missing_weight_rejected(self):
        settings = AstroSettings()
        del settings.context.token_weights["eclipses"]
        with pytest.raises(ConfigurationError, match="missing token weight for eclipses"):
            validate_astro_settings(settings)

    def test_missing_window_rejected(self):
        settings = AstroSettings()
        del settings.returns.activity_windows["saturn"]
        with pytest.raises(ConfigurationError, match="saturn"):
            validate_astro_settings(settings)

    def test_field_validation_wrapped(self):
        with pytest.raises(ConfigurationError, match="invalid astrology settings"):
            build_astro_settings({"transits": {"top_n": 0}})


# ---------- Merging ----------


class TestBuildAstroSettings:
    def test_dict_fields_merge_key_by_key(self):
        s = build_astro_settings({"returns": {"activity_windows": {"saturn": 45}}})
        assert s.returns.activity_windows == {"solar": 3, "jupiter": 14, "saturn": 45}

    def test_scalar_override(self):
        s = build_astro_settings({"transits": {"top_n": 5}})
        assert s.transits.top_n == 5
        assert s.patterns.stellium_min_bodies == 3

    def test_unknown_group_ignored(self):
        assert build_astro_settings({"tarot": {"deck": "thoth"}}) == AstroSettings()


# ---------- JSON Schema ----------


class TestAstroSettingsSchema:
    def test_schema_has_required_sections(self):
        schema = astro_settings_schema()
        props = schema["properties"]
        for section in ("aspects", "patterns", "returns", "transits", "context"):
            assert section in props


# ---------- load_astro_settings ----------


class TestLoadAstroSettings:
    async def test_no_overrides_returns_defaults(self, mock_session):
        s = await load_astro_settings(mock_session([]))
        assert s == AstroSettings()

    async def test_with_overrides(self, mock_session):
        rows = [
            FakeRow("astrology.transits.top_n", 5),
            FakeRow("astrology.returns.activity_windows", {"jupiter": 21}),
            FakeRow("astrology.context.token_budget", 600),
        ]

        s = await load_astro_settings(mock_session(rows))

        assert s.transits.top_n == 5
        assert s.returns.activity_windows["jupiter"] == 21
        assert s.returns.activity_windows["solar"] == 3
        assert s.context.token_budget == 600

    async def test_key_without_prefix(self, mock_session):
        s = await load_astro_settings(mock_session([FakeRow("patterns.stellium_min_bodies", 4)]))
        assert s.patterns.stellium_min_bodies == 4

    async def test_malformed_key_ignored(self, mock_session):
        s = await load_astro_settings(mock_session([FakeRow("astrology.top_n", 5)]))
        assert s == AstroSettings()

    async def test_invalid_override_fails_loudly(self, mock_session):
        rows = [FakeRow("astrology.aspects.orbs", {"semisquare": 10.0})]
        with pytest.raises(ConfigurationError):
            await load_astro_settings(mock_session(rows))
