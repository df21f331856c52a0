"""Session profile generator — one self-consistent browser identity per session.

Profiles come from ``PROFILE_POOL``, a read-only table of whole
(user agent, viewport, timezone, locale) tuples. A draw always picks one
tuple; overrides then replace individual fields of that same tuple. Fields
are never mixed across draws, so a Mac user agent never ends up with a
typical Windows laptop resolution or an unrelated region.
"""

from __future__ import annotations

import logging
import random
from typing import Any

from stealthrun.models.profile import ProfileOverrides, SessionProfile, Viewport

logger = logging.getLogger(__name__)

_CHROME_VERSIONS = (122, 123, 124)

_REGIONS: tuple[tuple[str, str], ...] = (
    ("America/New_York", "en-US"),
    ("America/Chicago", "en-US"),
    ("America/Los_Angeles", "en-US"),
    ("America/Toronto", "en-CA"),
    ("Europe/London", "en-GB"),
    ("Europe/Berlin", "de-DE"),
    ("Europe/Paris", "fr-FR"),
    ("Asia/Riyadh", "ar-SA"),
    ("Asia/Dubai", "ar-AE"),
    ("Africa/Cairo", "ar-EG"),
    ("Asia/Kuwait", "ar-KW"),
    ("Asia/Qatar", "ar-QA"),
)

# (user-agent template, viewports typical for that platform, regions)
_PLATFORMS: tuple[tuple[str, tuple[tuple[int, int], ...], tuple[tuple[str, str], ...]], ...] = (
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/{v}.0.0.0 Safari/537.36",
        ((1920, 1080), (1366, 768), (1536, 864), (1600, 900), (1280, 720)),
        _REGIONS,
    ),
    (
        # macOS logical (Retina) resolutions
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/{v}.0.0.0 Safari/537.36",
        ((1440, 900), (1512, 982), (1680, 1050), (1280, 800)),
        _REGIONS,
    ),
    (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/{v}.0.0.0 Safari/537.36",
        ((1920, 1080), (2560, 1440), (1366, 768)),
        _REGIONS[:7],
    ),
)


def _build_pool() -> tuple[SessionProfile, ...]:
    return tuple(
        SessionProfile(
            user_agent=template.format(v=version),
            viewport=Viewport(width=width, height=height),
            timezone=tz,
            locale=locale,
        )
        for template, viewports, regions in _PLATFORMS
        for version in _CHROME_VERSIONS
        for width, height in viewports
        for tz, locale in regions
    )


# Chromium user agents only: the engine drives Chromium, and a Firefox or
# Safari UA on a Chromium JS surface is itself a detectable inconsistency.
# Each tuple is built within one platform group, so every entry pairs a UA
# with viewports that platform actually reports.
PROFILE_POOL: tuple[SessionProfile, ...] = _build_pool()


class ProfileGenerator:
    """Draw ``SessionProfile`` tuples from a curated pool.

    Args:
        seed: Seed for a private ``random.Random``; same seed, same draws.
        rng: An explicit random source (takes precedence over ``seed``).
        pool: Profiles to draw from. Defaults to ``PROFILE_POOL``.
    """

    def __init__(
        self,
        seed: int | None = None,
        *,
        rng: random.Random | None = None,
        pool: tuple[SessionProfile, ...] = PROFILE_POOL,
    ) -> None:
        if not pool:
            raise ValueError("Profile pool must not be empty")
        self._rng = rng or random.Random(seed)
        self._pool = pool

    def generate(self, overrides: ProfileOverrides | dict[str, Any] | None = None) -> SessionProfile:
        """Draw one profile, then apply *overrides* field by field."""
        profile = self._rng.choice(self._pool)
        if overrides is None:
            return profile
        if isinstance(overrides, dict):
            overrides = ProfileOverrides.model_validate(overrides)
        update = overrides.model_dump(exclude_none=True)
        if not update:
            return profile
        logger.debug("Applying profile overrides: %s", sorted(update))
        return SessionProfile.model_validate({**profile.model_dump(), **update})


def generate_profile(
    overrides: ProfileOverrides | dict[str, Any] | None = None,
    *,
    seed: int | None = None,
) -> SessionProfile:
    """Draw a single profile (seeded when *seed* is given)."""
    return ProfileGenerator(seed).generate(overrides)
