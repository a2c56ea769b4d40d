"""Leave balance ledger.

Balances are only mutated here. Every mutation writes one append-only
``LeaveBalanceAudit`` row with the previous and new value.
"""

from __future__ import annotations

import logging
from datetime import date

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from hr_leave.leaves.exceptions import BalanceError
from hr_leave.leaves.exceptions import InvalidLeaveRequestError
from hr_leave.leaves.models import BALANCE_TYPES
from hr_leave.leaves.models import LeaveBalance
from hr_leave.leaves.models import LeaveBalanceAudit
from hr_leave.leaves.models import LeaveRequest
from hr_leave.leaves.models import bucket_field

logger = logging.getLogger(__name__)

ADJUST_ADD = "add"
ADJUST_REDUCE = "reduce"


def approval_marker(leave_request_id: int) -> str:
    """Prefix of the audit note written when a request's days are deducted."""
    return f"leave_request={leave_request_id};"


def requested_days(start: date, end: date) -> int:
    """Inclusive day count between ``start`` and ``end``."""

    if end < start:
        msg = "End date cannot be before start date"
        raise InvalidLeaveRequestError(msg)
    return (end - start).days + 1


class BalanceLedger:
    def __init__(
        self,
        *,
        allow_negative: bool | None = None,
        allotments: dict[str, int] | None = None,
    ):
        if allow_negative is None:
            allow_negative = getattr(settings, "LEAVE_BALANCE_ALLOW_NEGATIVE", True)
        self.allow_negative = allow_negative
        self.allotments = (
            allotments
            if allotments is not None
            else getattr(settings, "LEAVE_DEFAULT_ALLOTMENTS", {})
        )

    requested_days = staticmethod(requested_days)

    def get_balance(
        self,
        user_id: int,
        year: int | None = None,
        *,
        actor_id: int | None = None,
        lock: bool = False,
    ) -> LeaveBalance:
        """Return the balance row for ``year``, creating it with default allotments."""

        year = year or timezone.localdate().year
        qs = LeaveBalance.objects.all()
        if lock:
            qs = qs.select_for_update()
        balance = qs.filter(user_id=user_id, year=year).first()
        if balance is not None:
            return balance

        with transaction.atomic():
            defaults = {
                bucket_field(t): int(self.allotments.get(t, 0)) for t in BALANCE_TYPES
            }
            balance, created = LeaveBalance.objects.get_or_create(
                user_id=user_id, year=year, defaults=defaults
            )
            if created:
                LeaveBalanceAudit.objects.create(
                    leave_balance=balance,
                    adjusted_by_id=actor_id,
                    adjustment_type=LeaveBalanceAudit.AdjustmentType.SYSTEM_INITIALIZATION,
                    adjustment_amount=0,
                    previous_value=0,
                    new_value=0,
                    notes="Balance initialized with default allotments",
                )
                logger.info("Initialized %s leave balance for user %s", year, user_id)
        if lock:
            balance = LeaveBalance.objects.select_for_update().get(pk=balance.pk)
        return balance

    @transaction.atomic
    def apply_approval(
        self, leave_request: LeaveRequest, actor_id: int | None
    ) -> LeaveBalanceAudit:
        """Deduct an approved request's days from its bucket, exactly once.

        A second call for the same request returns the existing audit row
        without touching the balance.
        """

        locked = LeaveRequest.objects.select_for_update().get(pk=leave_request.pk)
        if locked.status != LeaveRequest.Status.APPROVED:
            msg = f"Leave request {locked.pk} is {locked.status}, not approved"
            raise BalanceError(msg)

        marker = approval_marker(locked.pk)
        existing = LeaveBalanceAudit.objects.filter(
            adjustment_type=LeaveBalanceAudit.AdjustmentType.APPROVAL_DEDUCTION,
            notes__startswith=marker,
        ).first()
        if existing is not None:
            logger.info("Leave request %s already deducted; skipping", locked.pk)
            return existing

        days = requested_days(locked.start_date, locked.end_date)
        balance = self.get_balance(
            locked.user_id, locked.start_date.year, actor_id=actor_id, lock=True
        )
        field = bucket_field(locked.leave_type)
        previous = getattr(balance, field)
        new = previous - days
        if new < 0 and not self.allow_negative:
            new = 0
        setattr(balance, field, new)
        balance.save(update_fields=[field, "updated_at"])

        logger.info(
            "Deducted %s %s day(s) for leave request %s: %s -> %s",
            days,
            locked.leave_type,
            locked.pk,
            previous,
            new,
        )
        return LeaveBalanceAudit.objects.create(
            leave_balance=balance,
            adjusted_by_id=actor_id,
            adjustment_type=LeaveBalanceAudit.AdjustmentType.APPROVAL_DEDUCTION,
            adjustment_amount=new - previous,
            previous_value=previous,
            new_value=new,
            notes=(
                f"{marker} {locked.leave_type} leave "
                f"{locked.start_date:%Y-%m-%d}..{locked.end_date:%Y-%m-%d} ({days} days)"
            ),
        )

    @transaction.atomic
    def adjust(  # noqa: PLR0913
        self,
        user_id: int,
        leave_type: str,
        kind: str,
        amount: int,
        reason: str,
        actor_id: int | None,
        year: int | None = None,
    ) -> LeaveBalanceAudit:
        """Manually add days to, or take days from, one bucket."""

        if leave_type not in BALANCE_TYPES:
            msg = f"Unknown leave type: {leave_type}"
            raise BalanceError(msg)
        if kind not in (ADJUST_ADD, ADJUST_REDUCE):
            msg = f"Adjustment must be '{ADJUST_ADD}' or '{ADJUST_REDUCE}'"
            raise BalanceError(msg)
        if int(amount) <= 0:
            msg = "Adjustment amount must be positive"
            raise BalanceError(msg)

        balance = self.get_balance(user_id, year, actor_id=actor_id, lock=True)
        field = bucket_field(leave_type)
        previous = getattr(balance, field)
        delta = int(amount) if kind == ADJUST_ADD else -int(amount)
        new = previous + delta
        if new < 0:
            msg = (
                f"Cannot reduce {leave_type} balance below zero "
                f"(current {previous}, requested {amount})"
            )
            raise BalanceError(msg)
        setattr(balance, field, new)
        balance.save(update_fields=[field, "updated_at"])

        adjustment_type = (
            LeaveBalanceAudit.AdjustmentType.MANUAL_ADD
            if kind == ADJUST_ADD
            else LeaveBalanceAudit.AdjustmentType.MANUAL_REDUCE
        )
        return LeaveBalanceAudit.objects.create(
            leave_balance=balance,
            adjusted_by_id=actor_id,
            adjustment_type=adjustment_type,
            adjustment_amount=delta,
            previous_value=previous,
            new_value=new,
            notes=reason,
        )

    def initialize_year(self, year: int, *, actor_id: int | None = None) -> int:
        """Create missing balance rows for every active user; returns how many."""

        existing = LeaveBalance.objects.filter(year=year).values_list(
            "user_id", flat=True
        )
        user_ids = (
            get_user_model()
            .objects.filter(is_active=True)
            .exclude(pk__in=existing)
            .order_by("pk")
            .values_list("pk", flat=True)
        )
        created = 0
        for user_id in list(user_ids):
            self.get_balance(user_id, year, actor_id=actor_id)
            created += 1
        return created
