"""Admin API of the RCON manager and the donation delivery."""

from .router import configure_admin_router
from .validation import Validate

__all__ = ["Validate", "configure_admin_router"]
