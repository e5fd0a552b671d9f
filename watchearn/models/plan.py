from decimal import Decimal

from watchearn.models.base import Money, Record


class PlanDefinition(Record):
    name: str
    cost: Money
    daily_video_limit: int
    duration_days: int
    reward_per_video: Money
    total_reward: Money = Decimal("0.00")
    is_active: bool = True

    def compute_total_reward(self) -> Decimal:
        return self.reward_per_video * self.daily_video_limit * self.duration_days
