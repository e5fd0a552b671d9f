from enum import Enum

from watchearn.models.base import Record


class ChannelDirection(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    BOTH = "both"


class PaymentMethod(Record):
    """Mobile-money channel users pay into or get paid from (e.g. M-Pesa, e-Mola)."""

    name: str
    details: str  # number or account users send money to
    instructions: str = ""
    direction: ChannelDirection = ChannelDirection.BOTH
    is_active: bool = True

    def accepts(self, direction: ChannelDirection) -> bool:
        return self.is_active and self.direction in (direction, ChannelDirection.BOTH)
