"""Coupon models."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from taskmirror.domain.fields import OptionalDatetime


class Coupon(BaseModel):
    """A redeemable discount code."""

    id: str = Field(..., description="Unique coupon ID from PocketBase")
    code: str = Field(..., description="Upper-case coupon code")
    discount_percent: int = Field(default=0, ge=0, le=100, description="Percentage off")
    is_free_month: bool = Field(default=False, description="Grants one free month")
    is_permanent: bool = Field(default=False, description="Redemption never expires")
    max_uses: int | None = Field(default=None, description="Redemption limit (None or 0 = unlimited)")
    current_uses: int = Field(default=0, ge=0, description="Redemptions so far")
    expires_at: OptionalDatetime = Field(default=None, description="Coupon expiry")

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("current_uses", mode="before")
    @classmethod
    def blank_uses(cls, v: object) -> object:
        return v or 0

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now

    @property
    def is_exhausted(self) -> bool:
        return bool(self.max_uses) and self.current_uses >= (self.max_uses or 0)


class UserCoupon(BaseModel):
    """One user's redemption of one coupon code."""

    id: str
    user_id: str
    coupon_code: str
    expires_at: OptionalDatetime = Field(default=None, description="None for permanent redemptions")
    is_active: bool = True
    created_at: OptionalDatetime = None

    def is_current(self, now: datetime) -> bool:
        return self.is_active and (self.expires_at is None or self.expires_at > now)
