"""Value types and validation predicates shared by the HTTP API and the bot."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing import Any, Optional

from .config import get_settings
from .errors import BadRequest, ValidationReason

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000


class ReportStatus(str, Enum):
    PENDING_APPROVAL = "Pending Approval"
    ASSIGNED = "Assigned"
    IN_PROGRESS = "In Progress"
    SUSPENDED = "Suspended"
    REJECTED = "Rejected"
    RESOLVED = "Resolved"
    IN_EXTERNAL_MAINTENANCE = "In External Maintenance"


# Statuses in which a report must carry an assignee.
ASSIGNED_STATUSES = frozenset(
    {
        ReportStatus.ASSIGNED,
        ReportStatus.IN_PROGRESS,
        ReportStatus.SUSPENDED,
        ReportStatus.RESOLVED,
        ReportStatus.IN_EXTERNAL_MAINTENANCE,
    }
)

# Statuses that count towards a staff member's workload.
ACTIVE_STATUSES = frozenset(
    {
        ReportStatus.ASSIGNED,
        ReportStatus.IN_PROGRESS,
        ReportStatus.SUSPENDED,
        ReportStatus.IN_EXTERNAL_MAINTENANCE,
    }
)


class ReportCategory(str, Enum):
    WATER_SUPPLY = "Water Supply - Drinking Water"
    ARCHITECTURAL_BARRIERS = "Architectural Barriers"
    SEWER_SYSTEM = "Sewer System"
    PUBLIC_LIGHTING = "Public Lighting"
    WASTE = "Waste"
    ROAD_SIGNS = "Road Signs and Traffic Lights"
    ROADS = "Roads and Urban Furnishings"
    GREEN_AREAS = "Public Green Areas and Playgrounds"
    OTHER = "Other"


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class BoundingBox:
    name: str
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, point: GeoPoint) -> bool:
        return (
            self.min_lat <= point.latitude <= self.max_lat
            and self.min_lon <= point.longitude <= self.max_lon
        )

    def as_viewbox(self) -> str:
        """Nominatim `viewbox` parameter: left,top,right,bottom."""
        return f"{self.min_lon},{self.max_lat},{self.max_lon},{self.min_lat}"


def municipal_boundary() -> BoundingBox:
    settings = get_settings()
    return BoundingBox(
        name=settings.boundary_name,
        min_lat=settings.boundary_min_lat,
        max_lat=settings.boundary_max_lat,
        min_lon=settings.boundary_min_lon,
        max_lon=settings.boundary_max_lon,
    )


def _is_number(value: Any) -> bool:
    # bool is a Real subclass but never a coordinate
    return isinstance(value, Real) and not isinstance(value, bool)


def validate_location(value: Any, boundary: Optional[BoundingBox] = None) -> GeoPoint:
    """Validate a location and return it as a GeoPoint.

    Accepts a GeoPoint or a mapping with `latitude` and `longitude` keys.
    """
    if value is None:
        raise BadRequest("Location is required", reason=ValidationReason.LOCATION_MISSING)

    if isinstance(value, GeoPoint):
        latitude, longitude = value.latitude, value.longitude
    elif isinstance(value, dict):
        latitude, longitude = value.get("latitude"), value.get("longitude")
    else:
        raise BadRequest(
            "Location is required and must be an object",
            reason=ValidationReason.LOCATION_MISSING,
        )

    if not _is_number(latitude) or not _is_number(longitude):
        raise BadRequest(
            "Location must include numeric latitude and longitude",
            reason=ValidationReason.LOCATION_MISSING,
        )

    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise BadRequest(
            "Invalid coordinates: latitude must be between -90 and 90, "
            "longitude between -180 and 180",
            reason=ValidationReason.INVALID_COORDINATES,
        )

    point = GeoPoint(float(latitude), float(longitude))
    boundary = boundary or municipal_boundary()
    if not boundary.contains(point):
        raise BadRequest(
            f"Location is outside {boundary.name} city boundaries",
            reason=ValidationReason.OUT_OF_BOUNDS,
        )
    return point


def validate_category(value: Any) -> ReportCategory:
    if isinstance(value, ReportCategory):
        return value
    try:
        return ReportCategory(value)
    except ValueError:
        raise BadRequest("Invalid category", reason=ValidationReason.INVALID_CATEGORY) from None


def validate_title(value: Optional[str]) -> str:
    title = (value or "").strip()
    if not title:
        raise BadRequest("Title is required", reason=ValidationReason.INVALID_TITLE)
    if len(title) > TITLE_MAX_LENGTH:
        raise BadRequest(
            f"Title must be at most {TITLE_MAX_LENGTH} characters",
            reason=ValidationReason.INVALID_TITLE,
        )
    return title


def validate_description(value: Optional[str]) -> str:
    description = (value or "").strip()
    if not description:
        raise BadRequest("Description is required", reason=ValidationReason.INVALID_DESCRIPTION)
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise BadRequest(
            f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters",
            reason=ValidationReason.INVALID_DESCRIPTION,
        )
    return description


def parse_status(value: Any) -> ReportStatus:
    if isinstance(value, ReportStatus):
        return value
    try:
        return ReportStatus(value)
    except ValueError:
        raise BadRequest("Invalid status") from None


def parse_report_id(value: Any) -> int:
    try:
        report_id = int(str(value).strip())
    except (TypeError, ValueError):
        raise BadRequest("Invalid report ID") from None
    if report_id <= 0:
        raise BadRequest("Invalid report ID")
    return report_id
