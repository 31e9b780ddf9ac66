"""Request and response bodies of the admin API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from topupbot.donations import DeliveryRequest


class CommandRequest(BaseModel):
    command: str = Field(min_length=1)


class DeliveryRequestBody(BaseModel):
    ticket_id: str = Field(min_length=1)
    discord_id: str
    discord_username: str
    player_id: str
    category: str
    item_id: str
    endpoint_key: str | None = None

    def to_request(self) -> DeliveryRequest:
        """Convert the body into a delivery request."""
        return DeliveryRequest(**self.model_dump())


class MessageResponse(BaseModel):
    message: str


class ResetResponse(BaseModel):
    reset: int
