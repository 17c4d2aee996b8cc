"""
Influencer and subscriber contracts (influencers_db.influencers).
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from contracts.base import DocumentId, UTCDateTime

logger = logging.getLogger(__name__)


class Subscriber(BaseModel):
    """A wallet subscribed to an influencer's signals"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    address: str = Field(..., description="Subscriber wallet address")
    username: str = Field("", description="Display name")
    subscribed_at: UTCDateTime = Field(
        ..., alias="subscribedAt", description="When the subscription started"
    )


class Influencer(BaseModel):
    """Signal source with its subscribers"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: DocumentId | None = Field(None, alias="_id")
    name: str = Field(..., description="Account name, matches 'Twitter Account'")
    image: str | None = None
    subscribers: list[Subscriber] = Field(default_factory=list)

    @field_validator("subscribers", mode="before")
    @classmethod
    def drop_invalid_subscribers(cls, v: Any) -> list[Any]:
        """Decode subscribers one by one, dropping entries that do not parse"""
        if not isinstance(v, list):
            return []

        subscribers: list[Subscriber] = []
        for raw in v:
            try:
                subscribers.append(
                    raw if isinstance(raw, Subscriber) else Subscriber.model_validate(raw)
                )
            except ValidationError as e:
                address = raw.get("address") if isinstance(raw, dict) else None
                logger.warning(
                    f"Dropping invalid subscriber entry {address}: "
                    f"{e.error_count()} validation error(s)"
                )
        return subscribers
