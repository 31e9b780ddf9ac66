"""Donation catalog, delivery workflow and delivery log."""

from .catalog import DonationCatalog, DonationCategory, DonationItem, KitGrant
from .delivery import DonationDelivery
from .queries import DonationQueries
from .types import DeliveryLog, DeliveryRequest, DeliveryStatus, DonorTotal

__all__ = [
    "DeliveryLog",
    "DeliveryRequest",
    "DeliveryStatus",
    "DonationCatalog",
    "DonationCategory",
    "DonationDelivery",
    "DonationItem",
    "DonationQueries",
    "DonorTotal",
    "KitGrant",
]
