"""
Quote Flow Data Model

Value objects passed between the token manager, the quote paths and the
normalizer. Serialised forms use the portal's camelCase keys.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

# A credential is only usable while it has more than this left (ms)
EXPIRY_SAFETY_MARGIN_MS = 5 * 60 * 1000

DEFAULT_DIMENSION_CM = 20
VOLUMETRIC_DIVISOR = 5000


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CachedCredential:
    """Portal session token harvested from a successful login."""

    access_token: str
    refresh_token: str
    expires_at: int  # epoch ms
    user_id: Optional[str] = None

    def is_usable(self, now: int) -> bool:
        return self.expires_at > now + EXPIRY_SAFETY_MARGIN_MS

    @property
    def expires_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at / 1000, tz=timezone.utc)

    def to_dict(self) -> dict:
        data = {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresAt": self.expires_at,
        }
        if self.user_id is not None:
            data["userId"] = self.user_id
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CachedCredential":
        """Build from the token file / storage record. Raises on missing fields."""
        access_token = data.get("accessToken")
        if not access_token:
            raise ValueError("credential has no accessToken")
        expires_at = data.get("expiresAt", data.get("expirationTime"))
        if expires_at is None:
            raise ValueError("credential has no expiresAt")
        return cls(
            access_token=str(access_token),
            refresh_token=str(data.get("refreshToken") or ""),
            expires_at=int(float(expires_at)),
            user_id=data.get("userId"),
        )


@dataclass(frozen=True)
class PriceRequest:
    """Shipment description for a quote lookup. Weights in kg, dimensions in cm."""

    origin_country: str
    destination_country: str
    weight: float
    origin_city: Optional[str] = None
    origin_postal_code: Optional[str] = None
    destination_city: Optional[str] = None
    destination_postal_code: Optional[str] = None
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    package_count: Optional[int] = None
    declared_value: Optional[float] = None
    currency: Optional[str] = None

    @property
    def dimensions(self) -> tuple:
        """(length, width, height) with missing values defaulted."""
        return (
            self.length or DEFAULT_DIMENSION_CM,
            self.width or DEFAULT_DIMENSION_CM,
            self.height or DEFAULT_DIMENSION_CM,
        )

    @property
    def volumetric_weight(self) -> float:
        length, width, height = self.dimensions
        return length * width * height / VOLUMETRIC_DIVISOR

    @property
    def billable_weight(self) -> float:
        return max(self.weight, self.volumetric_weight)

    def to_api_payload(self) -> dict:
        """Map to the nested body the quote-search API expects."""
        length, width, height = self.dimensions
        payload = {
            "origin": {
                "countryCode": self.origin_country,
                "city": self.origin_city,
                "postalCode": self.origin_postal_code,
            },
            "destination": {
                "countryCode": self.destination_country,
                "city": self.destination_city,
                "postalCode": self.destination_postal_code,
            },
            "cargo": {
                "weight": self.weight,
                "length": length,
                "width": width,
                "height": height,
                "packageCount": self.package_count or 1,
            },
            "declaredValue": self.declared_value,
            "currency": self.currency or "USD",
        }
        return _drop_none(payload)

    @classmethod
    def from_dict(cls, data: dict) -> "PriceRequest":
        return cls(
            origin_country=data["originCountry"],
            destination_country=data["destinationCountry"],
            weight=data["weight"],
            origin_city=data.get("originCity"),
            origin_postal_code=data.get("originPostalCode"),
            destination_city=data.get("destinationCity"),
            destination_postal_code=data.get("destinationPostalCode"),
            length=data.get("length"),
            width=data.get("width"),
            height=data.get("height"),
            package_count=data.get("packageCount"),
            declared_value=data.get("declaredValue"),
            currency=data.get("currency"),
        )


@dataclass(frozen=True)
class PriceQuote:
    carrier: str
    service: str
    price: float
    currency: str
    transit_days: Optional[Any] = None
    transit_time: Optional[str] = None

    def same_offer(self, other: "PriceQuote") -> bool:
        """True when both describe the same carrier/service at (almost) the same price."""
        return (
            self.carrier == other.carrier
            and self.service == other.service
            and abs(self.price - other.price) < 0.01
        )

    def to_dict(self) -> dict:
        data = {
            "carrier": self.carrier,
            "service": self.service,
            "price": self.price,
            "currency": self.currency,
        }
        if self.transit_days is not None:
            data["transitDays"] = self.transit_days
        if self.transit_time is not None:
            data["transitTime"] = self.transit_time
        return data


@dataclass
class QuoteResponse:
    """Envelope returned by every quote path."""

    success: bool
    quotes: list = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "QuoteResponse":
        return cls(success=False, quotes=[], error=error)

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "quotes": [q.to_dict() for q in self.quotes],
        }
        if self.error is not None:
            data["error"] = self.error
        return data


def _drop_none(value):
    if isinstance(value, dict):
        return {k: _drop_none(v) for k, v in value.items() if v is not None}
    return value
