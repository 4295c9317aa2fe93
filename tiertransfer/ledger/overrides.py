"""CustomDiscountRegistry — персональные ставки, заменяющие ставку тира."""

from typing import Dict, Optional

from tiertransfer.core.domain.units import BPS_SCALE, validate_account_id
from tiertransfer.core.errors import TierConfigurationInvalid


class CustomDiscountRegistry:
    def __init__(self):
        self._rates: Dict[str, int] = {}

    def set(self, account_id: str, rate_bps: int) -> None:
        key = validate_account_id(account_id)
        if not 0 <= rate_bps <= BPS_SCALE:
            raise TierConfigurationInvalid(f"custom rate {rate_bps} outside [0, {BPS_SCALE}]")
        self._rates[key] = rate_bps

    def remove(self, account_id: str) -> Optional[int]:
        """Returns: удалённая ставка или None если override не было."""
        return self._rates.pop(validate_account_id(account_id), None)

    def get(self, account_id: str) -> Optional[int]:
        return self._rates.get(validate_account_id(account_id))

    def max_rate_bps(self) -> Optional[int]:
        """Наибольшая персональная ставка или None если overrides нет."""
        return max(self._rates.values(), default=None)

    def __len__(self) -> int:
        return len(self._rates)
