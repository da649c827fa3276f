"""Static routing of report categories to the department role that handles them.

Each category maps to exactly one primary role; several categories may share a
department. The table is read-only process-wide configuration.
"""

from dataclasses import dataclass
from typing import Dict, Union

from .domain import ReportCategory, validate_category


@dataclass(frozen=True)
class Route:
    department: str
    role: str


WATER_AND_SEWER = "Water and Sewer Department"
PUBLIC_LIGHTING = "Public Lighting Department"
PUBLIC_WORKS = "Public Works Department"
MOBILITY = "Mobility and Traffic Department"
ENVIRONMENT = "Environmental Quality Department"
GREEN_AREAS = "Parks, Green Areas and Recreation Department"
GENERAL_SERVICES = "General Services Department"

ROUTING_TABLE: Dict[ReportCategory, Route] = {
    ReportCategory.WATER_SUPPLY: Route(WATER_AND_SEWER, "Water network staff member"),
    ReportCategory.SEWER_SYSTEM: Route(WATER_AND_SEWER, "Sewer system staff member"),
    ReportCategory.PUBLIC_LIGHTING: Route(PUBLIC_LIGHTING, "Electrical staff member"),
    ReportCategory.ARCHITECTURAL_BARRIERS: Route(PUBLIC_WORKS, "Accessibility staff member"),
    ReportCategory.ROADS: Route(PUBLIC_WORKS, "Road maintenance staff member"),
    ReportCategory.ROAD_SIGNS: Route(MOBILITY, "Traffic management staff member"),
    ReportCategory.WASTE: Route(ENVIRONMENT, "Recycling program staff member"),
    ReportCategory.GREEN_AREAS: Route(GREEN_AREAS, "Parks maintenance staff member"),
    ReportCategory.OTHER: Route(GENERAL_SERVICES, "Building maintenance staff member"),
}


def resolve_route(category: Union[str, ReportCategory]) -> Route:
    """Return the department/role responsible for `category`.

    Raises BadRequest for values outside the category enum.
    """
    return ROUTING_TABLE[validate_category(category)]


__all__ = ["Route", "ROUTING_TABLE", "resolve_route"]
