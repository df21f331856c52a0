"""Session identity: the fingerprint a single browser session presents."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Viewport(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = Field(gt=0)
    height: int = Field(gt=0)


class SessionProfile(BaseModel):
    """One self-consistent browser identity.

    Profiles are drawn as whole tuples from a curated pool so that the
    user agent, viewport, timezone and locale always agree with each other.
    """

    model_config = ConfigDict(frozen=True)

    user_agent: str
    viewport: Viewport
    timezone: str
    locale: str

    @property
    def languages(self) -> list[str]:
        """``navigator.languages`` consistent with ``locale``.

        ``ar-SA`` -> ``["ar-SA", "ar", "en-US", "en"]``; English locales
        keep only their own pair.
        """
        primary = self.locale.split("-")[0]
        languages = [self.locale]
        if primary != self.locale:
            languages.append(primary)
        if primary != "en":
            languages.extend(["en-US", "en"])
        return languages

    @property
    def platform(self) -> str:
        """``navigator.platform`` matching the user agent."""
        ua = self.user_agent
        if "Windows" in ua:
            return "Win32"
        if "Macintosh" in ua:
            return "MacIntel"
        return "Linux x86_64"


class ProfileOverrides(BaseModel):
    """Partial profile: only the fields set here replace the pool draw."""

    user_agent: str | None = None
    viewport: Viewport | None = None
    timezone: str | None = None
    locale: str | None = None
