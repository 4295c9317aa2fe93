"""
Transfer — модели запроса перевода и записи аудита

TransferRequest проверяет только типы: бизнес-валидация (нулевые id,
amount <= 0, пустой memo, trace_id == 0) выполняется в GATE 0, чтобы
отказ возвращался как TransferResult, а не как ошибка конструирования.

TransferRecord создаётся только после успешного settlement и не изменяется.
"""

from typing import Optional

from pydantic import BaseModel, Field


# =============================================================================
# DISCOUNT CONTEXT
# =============================================================================


class DiscountContext(BaseModel):
    """
    Входные данные модификаторов скидки.

    Все поля опциональны: пустой контекст означает только базовый тир.
    """

    quantity: int = Field(default=1, ge=1, description="Количество единиц (bulk discount)")
    timestamp_ms: Optional[int] = Field(
        default=None, ge=0, description="Время покупки (UTC, миллисекунды)"
    )
    is_vip: bool = Field(default=False, description="VIP / loyalty статус")
    has_referral: bool = Field(default=False, description="Покупка по реферальной ссылке")

    model_config = {"frozen": True}


# =============================================================================
# TRANSFER REQUEST
# =============================================================================


class TransferRequest(BaseModel):
    """Запрос customTransfer."""

    sender_id: str = Field(..., description="Покупатель (счётчик покупок)")
    source_id: str = Field(..., description="Счёт списания")
    destination_id: str = Field(..., description="Счёт зачисления")
    amount: int = Field(..., description="Сумма до скидки (минимальные единицы)")

    # Непрозрачные значения, передаются в TransferService как есть
    aux1: int = Field(default=0, description="Item / token reference")
    aux2: int = Field(default=0, description="Дополнительное значение")

    memo: str = Field(..., description="Назначение платежа (не пустое)")
    trace_id: int = Field(..., description="Корреляция аудита (не ноль)")

    context: Optional[DiscountContext] = None

    model_config = {"frozen": True}

    def participants(self) -> tuple[str, str, str]:
        return (self.sender_id, self.source_id, self.destination_id)


# =============================================================================
# TRANSFER RECORD
# =============================================================================


class TransferRecord(BaseModel):
    """Зафиксированный перевод (append-only audit trail)."""

    trace_id: int = Field(..., gt=0)
    sender_id: str
    source_id: str
    destination_id: str

    original_amount: int = Field(..., gt=0)
    discounted_amount: int = Field(..., gt=0)
    rate_applied_bps: int = Field(..., ge=0)

    aux1: int
    aux2: int
    memo: str = Field(..., min_length=1)

    purchase_count_before: int = Field(..., ge=0)
    committed_ts_utc_ms: int = Field(..., ge=0)

    model_config = {"frozen": True}

    def discount_amount(self) -> int:
        return self.original_amount - self.discounted_amount
