"""Coupon validation and redemption.

A user can hold at most one active redemption per coupon code. The checks in
``validate_coupon`` give the user a readable reason up front, but the unique
index on ``user_coupons (user_id, coupon_code)`` is what actually enforces
it: two concurrent redemptions both pass validation and only one insert
succeeds.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from taskmirror.core.auth import AuthContext
from taskmirror.core.config import settings
from taskmirror.core.errors import (
    ConstraintViolationError,
    ErrorCode,
    NotAuthenticatedError,
    PartialWorkflowFailure,
    SyncError,
)
from taskmirror.core.logging import log_with_user_context, span
from taskmirror.core.resource_client import ResourceClient, and_, eq
from taskmirror.domain.coupon import Coupon, UserCoupon
from taskmirror.models.service_models import CouponValidation, SyncResult


logger = logging.getLogger(__name__)

COUPONS_COLLECTION = "coupons"
USER_COUPONS_COLLECTION = "user_coupons"


def normalize_code(code: str) -> str:
    return code.strip().upper()


def _invalid(error_code: str, message: str) -> CouponValidation:
    return CouponValidation(valid=False, error_code=error_code, error=message)


class CouponService:
    """Validates and redeems coupon codes for the signed-in user."""

    def __init__(self, *, auth: AuthContext, clock: Callable[[], datetime] | None = None) -> None:
        self.auth = auth
        self._clock = clock or (lambda: datetime.now(UTC))
        self._coupons = ResourceClient(COUPONS_COLLECTION)
        self._user_coupons = ResourceClient(USER_COUPONS_COLLECTION)

    async def validate_coupon(self, code: str) -> CouponValidation:
        """Check, in order: the code exists, has not expired, has uses left, and the user has not redeemed it."""
        with span("coupon_service.validate_coupon"):
            user_id = self.auth.user_id
            if user_id is None:
                return _invalid(ErrorCode.ERR_NOT_AUTHENTICATED, "User not authenticated")

            code = normalize_code(code)
            try:
                row = await self._coupons.first(eq("code", code))
                if row is None:
                    return _invalid(ErrorCode.ERR_COUPON_NOT_FOUND, "Coupon not found")

                coupon = Coupon.model_validate(row)
                if coupon.is_expired(self._clock()):
                    return _invalid(ErrorCode.ERR_COUPON_EXPIRED, "Coupon expired")
                if coupon.is_exhausted:
                    return _invalid(ErrorCode.ERR_COUPON_EXHAUSTED, "Coupon has no uses left")

                redemption = await self._user_coupons.first(
                    and_(eq("user_id", user_id), eq("coupon_code", code), eq("is_active", True))
                )
            except SyncError as e:
                logger.warning("Coupon validation failed", extra={"code": code, "error": str(e)})
                return _invalid(e.code, "Failed to validate coupon")

            if redemption is not None:
                return _invalid(ErrorCode.ERR_COUPON_ALREADY_USED, "Coupon already used")
            return CouponValidation(valid=True, coupon=coupon)

    async def apply_coupon(self, code: str) -> SyncResult[UserCoupon]:
        """Redeem a coupon for the signed-in user and count the use."""
        with span("coupon_service.apply_coupon"):
            user_id = self.auth.user_id
            if user_id is None:
                return SyncResult.failure(NotAuthenticatedError("No user logged in"))

            validation = await self.validate_coupon(code)
            if not validation.valid or validation.coupon is None:
                error_class = (
                    ConstraintViolationError
                    if validation.error_code == ErrorCode.ERR_COUPON_ALREADY_USED
                    else SyncError
                )
                return SyncResult.failure(error_class(validation.error or "Invalid coupon", code=validation.error_code))

            coupon = validation.coupon
            now = self._clock()
            expires_at = None if coupon.is_permanent else now + timedelta(days=settings.coupon_duration_days)
            try:
                row = await self._user_coupons.insert(
                    {"user_id": user_id, "coupon_code": coupon.code, "expires_at": expires_at, "is_active": True}
                )
            except ConstraintViolationError as e:
                logger.info("Concurrent coupon redemption rejected", extra={"code": coupon.code, "user_id": user_id})
                return SyncResult.failure(
                    ConstraintViolationError("Coupon already used", code=ErrorCode.ERR_COUPON_ALREADY_USED, status=e.status)
                )
            except SyncError as e:
                return SyncResult.failure(e)

            redemption = UserCoupon.model_validate(row)
            try:
                await self._coupons.update(coupon.id, {"current_uses": coupon.current_uses + 1})
            except SyncError as e:
                return SyncResult.failure(
                    PartialWorkflowFailure(
                        f"Coupon redeemed but use count not updated: {e}",
                        completed_steps=["insert_user_coupon"],
                        failed_step="increment_current_uses",
                        cause=e,
                    ),
                    data=redemption,
                )

            log_with_user_context(logger, "info", "Coupon applied", user_id=user_id, code=coupon.code)
            return SyncResult.success(redemption)

    async def get_user_active_coupons(self) -> SyncResult[list[UserCoupon]]:
        """Active redemptions that have not expired (permanent ones never do)."""
        with span("coupon_service.get_user_active_coupons"):
            user_id = self.auth.user_id
            if user_id is None:
                return SyncResult.success([])
            try:
                rows = await self._user_coupons.list(
                    filter_query=and_(eq("user_id", user_id), eq("is_active", True)),
                    sort="-created_at",
                )
            except SyncError as e:
                return SyncResult.failure(e, data=[])

            now = self._clock()
            redemptions = [UserCoupon.model_validate(row) for row in rows]
            return SyncResult.success([redemption for redemption in redemptions if redemption.is_current(now)])
