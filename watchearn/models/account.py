from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from watchearn.models.base import Money, Record, UTCDateTime


class PlanSnapshot(BaseModel):
    """Terms of a plan frozen at purchase time; catalog edits never reach it."""

    plan_id: str
    name: str
    cost: Money
    daily_video_limit: int
    duration_days: int
    reward_per_video: Money
    activated_at: UTCDateTime
    expires_at: UTCDateTime

    def is_active_at(self, now: datetime) -> bool:
        return self.expires_at > now


class Account(Record):
    username: str
    email: str
    password_hash: str = ""
    avatar_url: str = ""
    is_admin: bool = False
    is_blocked: bool = False
    session_version: int = 0  # bumped on password change; stale tokens stop resolving

    balance: Money = Decimal("0.00")
    referral_code: str
    referred_by: str | None = None  # account id, weak reference

    active_plan: PlanSnapshot | None = None
    daily_watch_set: list[str] = Field(default_factory=list)
    last_quota_reset_at: UTCDateTime | None = None
    full_watch_history: list[str] = Field(default_factory=list)

    password_reset_token_hash: str | None = None
    password_reset_expires_at: UTCDateTime | None = None

    def has_active_plan(self, now: datetime) -> bool:
        return self.active_plan is not None and self.active_plan.is_active_at(now)

    def public(self) -> dict:
        """Profile view without credentials."""
        return self.model_dump(
            mode="json",
            exclude={"password_hash", "password_reset_token_hash", "password_reset_expires_at", "version", "session_version"},
        )
