"""Unit tests for the session profile generator."""

from __future__ import annotations

import random

import pytest

from stealthrun.browser.profiles import PROFILE_POOL, ProfileGenerator, generate_profile
from stealthrun.models.profile import ProfileOverrides, SessionProfile, Viewport

_MAC_VIEWPORTS = {(1440, 900), (1512, 982), (1680, 1050), (1280, 800)}


class TestProfilePool:
    """The curated pool is internally consistent."""

    def test_pool_is_not_empty(self) -> None:
        assert len(PROFILE_POOL) > 100

    def test_chromium_user_agents_only(self) -> None:
        for profile in PROFILE_POOL:
            assert "Chrome/" in profile.user_agent
            assert "Firefox" not in profile.user_agent

    def test_mac_profiles_use_mac_viewports(self) -> None:
        for profile in PROFILE_POOL:
            if profile.platform == "MacIntel":
                assert (profile.viewport.width, profile.viewport.height) in _MAC_VIEWPORTS

    def test_locale_matches_timezone_region(self) -> None:
        """Arabic locales only appear with Middle East / North Africa timezones."""
        for profile in PROFILE_POOL:
            if profile.locale.startswith("ar-"):
                assert profile.timezone.startswith(("Asia/", "Africa/"))
            if profile.timezone.startswith("America/"):
                assert profile.locale in ("en-US", "en-CA")


class TestProfileGenerator:
    """Seeded draws and overrides."""

    def test_same_seed_same_profile(self) -> None:
        assert generate_profile(seed=42) == generate_profile(seed=42)

    def test_different_seeds_vary(self) -> None:
        profiles = {generate_profile(seed=s) for s in range(20)}
        assert len(profiles) > 1

    def test_profile_comes_from_pool(self) -> None:
        assert generate_profile(seed=7) in PROFILE_POOL

    def test_explicit_rng(self) -> None:
        a = ProfileGenerator(rng=random.Random(3)).generate()
        b = ProfileGenerator(seed=3).generate()
        assert a == b

    def test_overrides_replace_only_named_fields(self) -> None:
        """Unspecified fields come from the same draw as without overrides."""
        base = generate_profile(seed=11)
        overridden = generate_profile(ProfileOverrides(locale="fr-FR"), seed=11)
        assert overridden.locale == "fr-FR"
        assert overridden.user_agent == base.user_agent
        assert overridden.viewport == base.viewport
        assert overridden.timezone == base.timezone

    def test_overrides_from_dict(self) -> None:
        profile = generate_profile({"viewport": {"width": 800, "height": 600}}, seed=1)
        assert profile.viewport == Viewport(width=800, height=600)

    def test_empty_overrides_return_draw(self) -> None:
        assert generate_profile(ProfileOverrides(), seed=5) == generate_profile(seed=5)

    def test_custom_pool(self) -> None:
        only = SessionProfile(
            user_agent="UA",
            viewport=Viewport(width=1, height=1),
            timezone="UTC",
            locale="en-US",
        )
        assert ProfileGenerator(pool=(only,)).generate() is only

    def test_empty_pool_rejected(self) -> None:
        with pytest.raises(ValueError):
            ProfileGenerator(pool=())
