import uuid
from datetime import datetime
from decimal import ROUND_DOWN, Decimal
from typing import Annotated, Any

from bson import Decimal128
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer

from watchearn.core.clock import as_utc, utcnow

CENT = Decimal("0.01")


def _to_decimal(v: Any) -> Any:
    if isinstance(v, Decimal128):
        return v.to_decimal()
    if isinstance(v, float):
        return Decimal(str(v))
    return v


def _to_utc(v: Any) -> Any:
    if isinstance(v, datetime):
        return as_utc(v)
    return v


Money = Annotated[
    Decimal,
    BeforeValidator(_to_decimal),
    PlainSerializer(lambda v: str(v), return_type=str, when_used="json"),
]
UTCDateTime = Annotated[datetime, BeforeValidator(_to_utc)]


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents, always down: bonuses never mint fractions of a cent."""
    return Decimal(value).quantize(CENT, rounding=ROUND_DOWN)


def new_id() -> str:
    return uuid.uuid4().hex


class Record(BaseModel):
    """Common persisted fields. `version` drives compare-and-set saves."""

    model_config = ConfigDict(validate_assignment=False)

    id: str = Field(default_factory=new_id)
    version: int = 0
    created_at: UTCDateTime = Field(default_factory=utcnow)
    updated_at: UTCDateTime = Field(default_factory=utcnow)
