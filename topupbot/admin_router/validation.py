"""FastAPI dependency validating the admin API key."""

import logging
import secrets

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=True)

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


class Validate:
    """Holds validator dependencies for FastAPI authentication."""

    def __init__(self, admin_api_key: str) -> None:
        """Create a new validator instance.

        :param admin_api_key: The key admin requests must present, an empty
            key rejects every request
        """
        self.admin_api_key = admin_api_key

    async def api_key(
        self,
        api_key: str = Security(api_key_header),
    ) -> str:
        """Validate the admin API key of a request."""
        if not self.admin_api_key or not secrets.compare_digest(
            api_key.encode(),
            self.admin_api_key.encode(),
        ):
            LOGGER.debug("Admin API key validation failed")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid API key",
            )
        return api_key
