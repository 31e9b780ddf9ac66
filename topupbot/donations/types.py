"""Data classes used in the donations module."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class DeliveryStatus(StrEnum):
    """Lifecycle of a delivery log entry."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class DeliveryRequest:
    """A paid donation waiting to be delivered in game.

    :param ticket_id: Ticket the donation was made in
    :param discord_id: Discord id of the donor
    :param discord_username: Discord username of the donor
    :param player_id: Game id (steam64) receiving the reward
    :param category: Donation category name
    :param item_id: Catalog id of the purchased item
    :param endpoint_key: Server to deliver on, the default one when None
    """

    ticket_id: str
    discord_id: str
    discord_username: str
    player_id: str
    category: str
    item_id: str
    endpoint_key: str | None = None


@dataclass(frozen=True)
class DeliveryLog:
    """One row of the delivery log."""

    id: int
    ticket_id: str
    discord_id: str
    discord_username: str
    player_id: str
    category: str
    item_id: str
    item_name: str
    amount: float
    status: str
    rcon_executed: bool
    error_message: str | None
    created_at: str
    completed_at: str | None


@dataclass(frozen=True)
class DonorTotal:
    """Completed donations of one donor, for the leaderboard."""

    discord_id: str
    discord_username: str
    total_amount: float
    donation_count: int
