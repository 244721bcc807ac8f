from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# Largest epoch-ms value datetime can represent (9999-12-31T23:59:59.999Z)
MAX_EPOCH_MS = 253402300799999


class WebhookEvent(BaseModel):
    # RevenueCat sends many more fields; keep them for the ledger and TRANSFER handling
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    app_user_id: str = Field(min_length=1)
    product_id: Optional[str] = None
    transaction_id: Optional[str] = None
    original_transaction_id: Optional[str] = None
    purchased_at_ms: Optional[float] = Field(default=None, ge=0, le=MAX_EPOCH_MS)
    expiration_at_ms: Optional[float] = Field(default=None, ge=0, le=MAX_EPOCH_MS)
    price: Optional[float] = None
    currency: Optional[str] = None


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    api_version: str
    event: WebhookEvent


class LinkSubscriberRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    revenuecat_user_id: str = Field(alias="revenuecatUserId", min_length=1)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubscriptionFeatures(_CamelModel):
    unlimited_affirmations: bool
    premium_affirmations: bool
    download_backgrounds: bool


class SubscriptionStatusResponse(_CamelModel):
    status: str
    expires_at: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    is_trial_active: bool
    features: SubscriptionFeatures
