"""
Domain Events — уведомления о зафиксированных изменениях

Immutable Pydantic модели. Событие публикуется только после того,
как изменение состояния уже применено (past tense).
"""

import time
import uuid
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field


def _now_ms() -> int:
    return int(time.time() * 1000)


class DomainEvent(BaseModel):
    """Базовое событие."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    occurred_ts_utc_ms: int = Field(default_factory=_now_ms)
    trace_id: Optional[int] = Field(default=None, description="Корреляция с TransferRequest")

    model_config = {"frozen": True}


class OracleChanged(DomainEvent):
    event_type: Literal["oracle_changed"] = "oracle_changed"

    previous_oracle_id: Optional[str]
    new_oracle_id: str


class PurchaseCountChanged(DomainEvent):
    event_type: Literal["purchase_count_changed"] = "purchase_count_changed"

    account_id: str
    previous_count: int = Field(..., ge=0)
    new_count: int = Field(..., ge=0)
    reason: Literal["purchase", "reset", "bulk_set"]


class DiscountApplied(DomainEvent):
    event_type: Literal["discount_applied"] = "discount_applied"

    account_id: str
    item_ref: int
    original_amount: int = Field(..., gt=0)
    discounted_amount: int = Field(..., gt=0)


class TransferCommitted(DomainEvent):
    event_type: Literal["transfer_committed"] = "transfer_committed"

    sender_id: str
    source_id: str
    destination_id: str
    discounted_amount: int = Field(..., gt=0)
    aux1: int
    aux2: int


AnyEvent = Union[OracleChanged, PurchaseCountChanged, DiscountApplied, TransferCommitted]
