"""
Geocoding port.

Address -> coordinates lookup for suppliers. Best effort: every failure is
turned into `None` by the caller, a supplier save never depends on it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import requests

from gestock.app.core.config import Settings, get_settings
from gestock.app.core.exceptions import GeocodingError
from gestock.app.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


class AddressGeocoder(Protocol):
    def locate(self, address: str) -> Coordinates | None:
        """Return coordinates, None when nothing matches; raise GeocodingError on failure."""
        ...


class NullGeocoder:
    """Used when geocoding is disabled (and in tests)."""

    def locate(self, address: str) -> Coordinates | None:
        return None


class NominatimGeocoder:
    def __init__(self, url: str, timeout: float, user_agent: str, session: requests.Session | None = None):
        self.url = url
        self.timeout = timeout
        self.user_agent = user_agent
        self.session = session or requests.Session()

    def locate(self, address: str) -> Coordinates | None:
        try:
            response = self.session.get(
                self.url,
                params={"q": address, "format": "json", "limit": 1},
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
            response.raise_for_status()
            results = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise GeocodingError(address, str(exc)) from exc

        if not results:
            return None
        try:
            return Coordinates(latitude=float(results[0]["lat"]), longitude=float(results[0]["lon"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise GeocodingError(address, f"unexpected payload: {exc}") from exc


def build_geocoder(settings: Settings | None = None) -> AddressGeocoder:
    settings = settings or get_settings()
    if not settings.GEOCODER_ENABLED:
        return NullGeocoder()
    return NominatimGeocoder(
        url=settings.GEOCODER_URL,
        timeout=settings.GEOCODER_TIMEOUT,
        user_agent=settings.GEOCODER_USER_AGENT,
    )


def format_address(
    address: str | None,
    postal_code: str | None = None,
    city: str | None = None,
    country: str | None = None,
) -> str | None:
    parts = [p.strip() for p in (address, postal_code, city, country) if p and p.strip()]
    return ", ".join(parts) if parts else None


def try_locate(geocoder: AddressGeocoder, address: str | None) -> Coordinates | None:
    """locate() that never raises: failures are logged and dropped."""
    if not address:
        return None
    try:
        return geocoder.locate(address)
    except GeocodingError as exc:
        logger.warning("geocoding_failed", address=address, reason=exc.details.get("reason"))
        return None
