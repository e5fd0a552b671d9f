"""Typed, validated inputs for core operations. Routers accept these as request bodies."""

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from watchearn.models.payment_method import ChannelDirection


def _strip(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    return v or None


def _username(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    if not v.replace("_", "").replace(".", "").isalnum():
        raise ValueError("username may contain letters, digits, '.' and '_' only")
    return v


class RegisterCommand(BaseModel):
    username: str = Field(min_length=3, max_length=40)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    referral_code: str | None = None

    check_username = field_validator("username")(_username)

    @field_validator("referral_code")
    @classmethod
    def _code(cls, v: str | None) -> str | None:
        v = _strip(v)
        return v.upper() if v else None


class LoginCommand(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdateCommand(BaseModel):
    username: str | None = Field(default=None, min_length=3, max_length=40)
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=6, max_length=128)

    check_username = field_validator("username")(_username)


class ForgotPasswordCommand(BaseModel):
    email: EmailStr


class ResetPasswordCommand(BaseModel):
    token: str = Field(min_length=10)
    new_password: str = Field(min_length=6, max_length=128)


class DepositCommand(BaseModel):
    amount: Decimal = Field(gt=0, decimal_places=2)
    channel: str = Field(min_length=1, max_length=60)
    proof_text: str | None = Field(default=None, max_length=2000)
    proof_image_url: str | None = None
    external_reference: str | None = Field(default=None, max_length=120)

    @model_validator(mode="after")
    def _needs_proof(self) -> "DepositCommand":
        self.proof_text = _strip(self.proof_text)
        self.proof_image_url = _strip(self.proof_image_url)
        if not self.proof_text and not self.proof_image_url:
            raise ValueError("proof_text or proof_image_url is required")
        return self


class WithdrawalCommand(BaseModel):
    amount: Decimal = Field(gt=0, decimal_places=2)
    channel: str = Field(min_length=1, max_length=60)
    phone_number: str = Field(min_length=6, max_length=20)

    @field_validator("phone_number")
    @classmethod
    def _phone(cls, v: str) -> str:
        digits = v.replace(" ", "").replace("+", "")
        if not digits.isdigit():
            raise ValueError("phone_number must contain digits only")
        return v.replace(" ", "")


class ResolveCommand(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class BalanceAdjustCommand(BaseModel):
    amount: Decimal = Field(gt=0, decimal_places=2)
    direction: Literal["add", "remove"]
    note: str = Field(default="", max_length=500)


class BlockCommand(BaseModel):
    is_blocked: bool


class PlanCommand(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    cost: Decimal = Field(gt=0, decimal_places=2)
    daily_video_limit: int = Field(gt=0, le=500)
    duration_days: int = Field(gt=0, le=3650)
    reward_per_video: Decimal = Field(gt=0, decimal_places=2)
    is_active: bool = True


class PlanUpdateCommand(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=80)
    cost: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    daily_video_limit: int | None = Field(default=None, gt=0, le=500)
    duration_days: int | None = Field(default=None, gt=0, le=3650)
    reward_per_video: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    is_active: bool | None = None


class VideoCommand(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    url: str | None = None
    duration_seconds: int = Field(gt=0)


class PaymentMethodCommand(BaseModel):
    name: str = Field(min_length=1, max_length=60)
    details: str = Field(min_length=1, max_length=200)
    instructions: str = Field(default="", max_length=1000)
    direction: ChannelDirection = ChannelDirection.BOTH
    is_active: bool = True


class PaymentMethodUpdateCommand(BaseModel):
    details: str | None = Field(default=None, min_length=1, max_length=200)
    instructions: str | None = Field(default=None, max_length=1000)
    direction: ChannelDirection | None = None
    is_active: bool | None = None
