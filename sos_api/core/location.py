"""Immutable geographic location value and distance helpers."""

import math
from dataclasses import dataclass

from sos_api.core.errors import ValidationError

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Location:
    """Latitude/longitude pair with an optional free-text address.

    Raises ValidationError on construction if either coordinate is missing
    or outside [-90, 90] / [-180, 180].
    """

    latitude: float
    longitude: float
    address: str | None = None

    def __post_init__(self) -> None:
        _check_coordinate("latitude", self.latitude, 90.0)
        _check_coordinate("longitude", self.longitude, 180.0)
        # Normalise ints and Decimals so equality and arithmetic stay float based
        object.__setattr__(self, "latitude", float(self.latitude))
        object.__setattr__(self, "longitude", float(self.longitude))
        if self.address is not None:
            object.__setattr__(self, "address", self.address.strip() or None)

    def distance_km(self, other: "Location") -> float:
        """Great-circle distance to another location."""
        return haversine_km(self.latitude, self.longitude, other.latitude, other.longitude)


def _check_coordinate(field: str, value: float | None, bound: float) -> None:
    if value is None:
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field, value=value)
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field, value=str(value))
    if math.isnan(numeric) or not -bound <= numeric <= bound:
        raise ValidationError(
            f"{field} must be between {-bound:g} and {bound:g}",
            field=field,
            value=numeric,
        )


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres between two coordinates."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))
