"""Delivery of paid donations to game servers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import aiosqlite

from topupbot.rconclient import CommandResult

from .catalog import DonationCatalog, DonationCategory, DonationItem
from .types import DeliveryRequest, DeliveryStatus

if TYPE_CHECKING:
    from topupbot.rconclient import RCONClientManager

    from .queries import DonationQueries
    from .types import DeliveryLog

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


class DonationDelivery:
    """Turns a paid donation into the RCON commands that deliver it.

    **Example Usage:**

    .. code-block:: python

        delivery = DonationDelivery(manager, catalog, queries)
        result = await delivery.deliver(
            DeliveryRequest(
                ticket_id="T-1001",
                discord_id="1234",
                discord_username="donor",
                player_id="76561190000000001",
                category="points",
                item_id="points_500",
            ),
        )
    """

    def __init__(
        self,
        manager: RCONClientManager,
        catalog: DonationCatalog,
        queries: DonationQueries | None = None,
        default_endpoint: str = "main",
    ) -> None:
        """Create a delivery workflow.

        :param manager: Manager executing the commands
        :param catalog: Catalog the purchased items are looked up in
        :param queries: Delivery log repository, nothing is recorded when None
        :param default_endpoint: Server used when a request names none
        """
        self.manager = manager
        self.catalog = catalog
        self.queries = queries
        self.default_endpoint = default_endpoint

    async def deliver(self, request: DeliveryRequest) -> CommandResult:
        """Deliver a donation and record the outcome.

        Invalid requests fail without any command being sent.

        :param request: The paid donation
        :return: The outcome of the delivery
        """
        endpoint_key = request.endpoint_key or self.default_endpoint
        LOGGER.info(
            "Delivering %s/%s for ticket %s to %s on %s",
            request.category,
            request.item_id,
            request.ticket_id,
            request.player_id,
            endpoint_key,
        )

        try:
            category = DonationCategory(request.category)
        except ValueError:
            return CommandResult.failure(
                endpoint_key,
                f"Unsupported donation category {request.category}",
            )

        item = self.catalog.find_item(category, request.item_id)
        problems = self.catalog.validate_item(category, item)
        if not request.player_id:
            problems.append("Missing player id")

        if item is None:
            LOGGER.warning("Donation item %s/%s not found", category, request.item_id)
            return CommandResult.failure(endpoint_key, "; ".join(problems))

        existing = await self._find_log(request.ticket_id)
        if existing is not None and existing.status == DeliveryStatus.COMPLETED:
            LOGGER.warning("Ticket %s was already delivered, skipped", request.ticket_id)
            return CommandResult.failure(
                endpoint_key,
                f"Ticket {request.ticket_id} already delivered",
            )

        if existing is not None:
            log_id = existing.id
        else:
            log_id = await self._record_start(request, item)

        if problems:
            result = CommandResult.failure(endpoint_key, "; ".join(problems))
        elif category == DonationCategory.POINTS:
            result = await self.manager.give_points(
                endpoint_key,
                request.player_id,
                item.points,
            )
        elif category == DonationCategory.RANKS:
            result = await self.manager.run_command_sequence(
                endpoint_key,
                request.player_id,
                item.rcon_commands,
            )
        else:
            result = await self._give_kits(endpoint_key, request.player_id, item)

        if result.success:
            LOGGER.info("Ticket %s delivered on %s", request.ticket_id, endpoint_key)
        else:
            LOGGER.error(
                "Ticket %s delivery failed on %s: %s",
                request.ticket_id,
                endpoint_key,
                result.error,
            )

        await self._record_outcome(log_id, result)
        return result

    async def _give_kits(
        self,
        endpoint_key: str,
        player_id: str,
        item: DonationItem,
    ) -> CommandResult:
        """Give every kit of an item in order, stopping at the first failure."""
        results = []
        for kit in item.kits:
            result = await self.manager.give_kit(
                endpoint_key,
                player_id,
                kit.kit_name,
                kit.quantity,
            )
            results.append(result)

            if not result.success:
                return CommandResult.failure(
                    endpoint_key,
                    f"Kit {kit.kit_name} failed: {result.error}",
                    results,
                )

        return CommandResult.ok(
            endpoint_key,
            "\n".join(result.response or "" for result in results),
            results,
        )

    async def _find_log(self, ticket_id: str) -> DeliveryLog | None:
        """Return the log entry of a ticket, None when none can be read."""
        if self.queries is None:
            return None

        try:
            return await self.queries.get_by_ticket_id(ticket_id)
        except aiosqlite.Error:
            LOGGER.exception("Error reading delivery log of ticket %s", ticket_id)
            return None

    async def _record_start(
        self,
        request: DeliveryRequest,
        item: DonationItem,
    ) -> int | None:
        """Create the log entry of a ticket, None when not recorded."""
        if self.queries is None:
            return None

        try:
            return await self.queries.log_delivery(
                ticket_id=request.ticket_id,
                discord_id=request.discord_id,
                discord_username=request.discord_username,
                player_id=request.player_id,
                category=request.category,
                item_id=item.id,
                item_name=item.name,
                amount=item.price,
            )
        except aiosqlite.Error:
            LOGGER.exception("Error logging delivery of ticket %s", request.ticket_id)
            return None

    async def _record_outcome(self, log_id: int | None, result: CommandResult) -> None:
        """Store the outcome of a delivery, logging instead of raising."""
        if self.queries is None or log_id is None:
            return

        try:
            await self.queries.update_status(
                log_id,
                DeliveryStatus.COMPLETED if result.success else DeliveryStatus.FAILED,
                rcon_executed=result.success,
                error_message=result.error,
            )
        except aiosqlite.Error:
            LOGGER.exception("Error updating delivery log %d", log_id)
