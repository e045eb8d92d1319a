"""Administrative services for workshop access control."""

from workshop.services.access_control import AccessControlService

__all__ = [
    "AccessControlService",
]
