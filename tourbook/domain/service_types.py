"""Bookable service types and their resource requirements."""

from enum import Enum


class ServiceType(str, Enum):
    """Service categories a customer can book."""

    DRIVER = "Driver"
    ACCOMMODATION = "Accommodation"
    EVENTS = "Events"
    GUIDE = "Guide"


SERVICE_TYPE_LABELS = {
    ServiceType.DRIVER: "Transportation",
    ServiceType.ACCOMMODATION: "Accommodation",
    ServiceType.EVENTS: "Events & Activities",
    ServiceType.GUIDE: "Tourist Guide",
}

# Older bookings were stored with these names
SERVICE_TYPE_ALIASES = {
    "transportation": ServiceType.DRIVER,
    "hotels": ServiceType.ACCOMMODATION,
}

# Resource role that must be assigned before the service can start
RESOURCE_ROLES = {
    ServiceType.DRIVER: "driver",
    ServiceType.GUIDE: "guide",
}


def normalize_service_type(value: str) -> ServiceType:
    """Raises ValueError for unknown service types."""
    alias = SERVICE_TYPE_ALIASES.get(value.strip().lower())
    if alias:
        return alias
    for service_type in ServiceType:
        if service_type.value.lower() == value.strip().lower():
            return service_type
    raise ValueError(f"Unknown service type: {value}")


def requires_resource_assignment(service_type: str) -> bool:
    """Check if a driver or guide must be assigned before the trip starts."""
    try:
        return normalize_service_type(service_type) in RESOURCE_ROLES
    except ValueError:
        return False


def resource_role_for(service_type: str) -> str | None:
    try:
        return RESOURCE_ROLES.get(normalize_service_type(service_type))
    except ValueError:
        return None
