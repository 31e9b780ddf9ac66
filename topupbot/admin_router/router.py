"""Router exposing the RCON manager and donation delivery to operators."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from topupbot.config import ConfigLoadError

from .models import CommandRequest, DeliveryRequestBody, MessageResponse, ResetResponse

if TYPE_CHECKING:
    from topupbot.donations import DonationDelivery
    from topupbot.rconclient import RCONClientManager

    from .validation import Validate

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


def _endpoint_not_found(endpoint_key: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Endpoint {endpoint_key} is not configured",
    )


def configure_admin_router(
    router: APIRouter,
    manager: RCONClientManager,
    delivery: DonationDelivery,
    validate: Validate,
) -> APIRouter:
    """Configure the admin router with necessary dependencies.

    :param router: The FastAPI APIRouter to configure
    :param manager: The RCONClientManager executing commands
    :param delivery: The DonationDelivery delivering donations
    :param validate: The Validate instance for authentication
    :return: The configured APIRouter
    """
    auth = [Depends(validate.api_key)]

    @router.get("/endpoints", dependencies=auth)
    async def list_endpoints() -> list[dict[str, Any]]:
        return [asdict(endpoint) for endpoint in manager.get_all_endpoints()]

    @router.get("/endpoints/available", dependencies=auth)
    async def list_available_endpoints() -> list[dict[str, Any]]:
        return [asdict(endpoint) for endpoint in manager.get_available_endpoints()]

    @router.get("/endpoints/best", dependencies=auth)
    async def best_endpoint() -> dict[str, Any]:
        best = manager.select_best_available()
        if best is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="No RCON endpoint is available",
            )
        return asdict(best)

    @router.get("/endpoints/{endpoint_key}", dependencies=auth)
    async def endpoint_status(endpoint_key: str) -> dict[str, Any]:
        endpoint = manager.get_endpoint_status(endpoint_key)
        if endpoint is None:
            raise _endpoint_not_found(endpoint_key)
        return asdict(endpoint)

    @router.post("/endpoints/{endpoint_key}/command", dependencies=auth)
    async def execute_command(
        endpoint_key: str,
        body: CommandRequest,
    ) -> dict[str, Any]:
        LOGGER.info("Admin command on %s: %s", endpoint_key, body.command)
        result = await manager.execute_command(endpoint_key, body.command)
        return asdict(result)

    @router.post("/endpoints/reset", dependencies=auth)
    async def reset_all_endpoints() -> ResetResponse:
        return ResetResponse(reset=manager.reset_all_failures())

    @router.post("/endpoints/{endpoint_key}/reset", dependencies=auth)
    async def reset_endpoint(endpoint_key: str) -> MessageResponse:
        if not manager.reset_failures(endpoint_key):
            raise _endpoint_not_found(endpoint_key)
        return MessageResponse(message=f"Failures of {endpoint_key} reset")

    @router.post("/endpoints/test", dependencies=auth)
    async def test_all_endpoints() -> dict[str, Any]:
        return asdict(await manager.test_all_connectivity())

    @router.post("/endpoints/{endpoint_key}/test", dependencies=auth)
    async def test_endpoint(endpoint_key: str) -> dict[str, Any]:
        if manager.get_endpoint_status(endpoint_key) is None:
            raise _endpoint_not_found(endpoint_key)
        return asdict(await manager.test_connectivity(endpoint_key))

    @router.post("/reload", dependencies=auth)
    async def reload_configuration() -> dict[str, Any]:
        try:
            configuration = manager.reload()
        except ConfigLoadError as e:
            LOGGER.exception("Configuration reload failed")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=str(e),
            ) from e
        return asdict(configuration)

    @router.get("/health", dependencies=auth)
    async def health() -> dict[str, Any]:
        return asdict(await manager.health_check())

    @router.get("/configuration", dependencies=auth)
    async def configuration() -> dict[str, Any]:
        return asdict(manager.get_configuration())

    @router.post("/donations/deliver", dependencies=auth)
    async def deliver_donation(body: DeliveryRequestBody) -> dict[str, Any]:
        result = await delivery.deliver(body.to_request())
        if not result.success:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=asdict(result),
            )
        return asdict(result)

    def _require_queries() -> None:
        if delivery.queries is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Delivery log is not configured",
            )

    @router.get("/donations/leaderboard", dependencies=auth)
    async def leaderboard(
        limit: int = Query(default=10, ge=1, le=100),
    ) -> list[dict[str, Any]]:
        _require_queries()
        return [asdict(donor) for donor in await delivery.queries.top_donors(limit)]

    @router.get("/donations/recent", dependencies=auth)
    async def recent_donations(
        limit: int = Query(default=20, ge=1, le=100),
    ) -> list[dict[str, Any]]:
        _require_queries()
        return [asdict(log) for log in await delivery.queries.recent_deliveries(limit)]

    @router.get("/donations/{ticket_id}", dependencies=auth)
    async def donation_status(ticket_id: str) -> dict[str, Any]:
        _require_queries()
        log = await delivery.queries.get_by_ticket_id(ticket_id)
        if log is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"No delivery recorded for ticket {ticket_id}",
            )
        return asdict(log)

    return router
