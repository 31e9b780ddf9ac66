"""Donation catalog built from the ``donation_categories`` configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


class DonationCategory(StrEnum):
    """Kinds of rewards a donation can buy.

    :cvar POINTS: Shop points, delivered with one points command
    :cvar RANKS: A rank, delivered by its list of command templates
    :cvar ITEMS: One or more kits, delivered one kit command each
    """

    POINTS = "points"
    RANKS = "ranks"
    ITEMS = "items"


@dataclass(frozen=True)
class KitGrant:
    """A kit handed out by an items donation."""

    kit_name: str
    quantity: int = 1


@dataclass(frozen=True)
class DonationItem:
    """One purchasable entry of the catalog.

    :param id: Identifier unique within its category
    :param name: Display name
    :param price: Price paid by the donor
    :param points: Points granted (points category)
    :param rcon_commands: Command templates run in order (ranks category)
    :param kits: Kits granted in order (items category)
    """

    id: str
    name: str
    price: float = 0
    points: int = 0
    rcon_commands: list[str] = field(default_factory=list)
    kits: list[KitGrant] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> DonationItem:
        """Build an item from its configuration entry.

        Kits accept both ``kitName`` and ``kit_name``.

        :raises ValueError: If a numeric field is not a number
        """
        kits = [
            KitGrant(
                kit_name=str(kit.get("kitName") or kit.get("kit_name") or ""),
                quantity=int(kit.get("quantity") or 1),
            )
            for kit in raw.get("kits") or []
        ]
        return cls(
            id=str(raw.get("id", "")),
            name=str(raw.get("name") or raw.get("id", "")),
            price=float(raw.get("price") or 0),
            points=int(raw.get("points") or 0),
            rcon_commands=[str(command) for command in raw.get("rcon_commands") or []],
            kits=kits,
        )


class DonationCatalog:
    """Donation items grouped by category."""

    def __init__(self, items: dict[DonationCategory, list[DonationItem]]) -> None:
        self._items = items

    @classmethod
    def from_config(cls, categories: Mapping[str, Any]) -> DonationCatalog:
        """Build a catalog from the ``donation_categories`` section.

        Unknown categories and malformed entries are logged and skipped.

        :param categories: Mapping of category name to a list of entries
        :return: The catalog
        """
        items: dict[DonationCategory, list[DonationItem]] = {
            category: [] for category in DonationCategory
        }

        for name, entries in categories.items():
            try:
                category = DonationCategory(name)
            except ValueError:
                LOGGER.warning("Unknown donation category %s, skipped", name)
                continue

            for entry in entries or []:
                try:
                    items[category].append(DonationItem.from_mapping(entry))
                except (AttributeError, TypeError, ValueError):
                    LOGGER.warning("Malformed %s donation entry %r, skipped", name, entry)

        return cls(items)

    def items_in(self, category: DonationCategory | str) -> list[DonationItem]:
        """Return the items of a category, empty for an unknown category."""
        try:
            return list(self._items.get(DonationCategory(category), []))
        except ValueError:
            return []

    def find_item(
        self,
        category: DonationCategory | str,
        item_id: str,
    ) -> DonationItem | None:
        """Return the item with ``item_id`` in ``category``, if any."""
        for item in self.items_in(category):
            if item.id == item_id:
                return item
        return None

    @staticmethod
    def validate_item(
        category: DonationCategory | str,
        item: DonationItem | None,
    ) -> list[str]:
        """Return what keeps an item from being delivered.

        :param category: Category the item is delivered as
        :param item: The item, None when it was not found
        :return: Problems found, empty when the item can be delivered
        """
        if item is None:
            return ["Donation item not found"]

        errors = []
        if not item.id:
            errors.append("Missing item id")

        if category == DonationCategory.POINTS:
            if item.points <= 0:
                errors.append("Points item needs a positive points amount")
        elif category == DonationCategory.RANKS:
            if not item.rcon_commands:
                errors.append("Rank item needs at least one RCON command")
        elif category == DonationCategory.ITEMS:
            if not item.kits:
                errors.append("Items entry needs at least one kit")
            errors.extend(
                f"Kit {index} has no name"
                for index, kit in enumerate(item.kits, start=1)
                if not kit.kit_name
            )
        else:
            errors.append(f"Unsupported donation category {category}")

        return errors
