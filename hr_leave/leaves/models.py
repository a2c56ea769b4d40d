from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils.translation import gettext_lazy as _


class LeaveType(models.TextChoices):
    ANNUAL = "annual", _("Annual")
    SICK = "sick", _("Sick")
    LONG = "long", _("Long")
    MATERNITY = "maternity", _("Maternity")
    PATERNITY = "paternity", _("Paternity")
    MARRIAGE = "marriage", _("Marriage")
    DEATH = "death", _("Death")
    HAJJ_UMRAH = "hajj_umrah", _("Hajj / Umrah")


# Balance buckets: one per request type plus a general-purpose "other" bucket.
BALANCE_TYPES = (*LeaveType.values, "other")


def bucket_field(leave_type: str) -> str:
    """Name of the ``LeaveBalance`` column holding ``leave_type`` days."""
    return f"{leave_type}_leave"


class LeaveRequest(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        APPROVED = "approved", _("Approved")
        REJECTED = "rejected", _("Rejected")
        CANCELLED = "cancelled", _("Cancelled")
        ERROR_NO_APPROVER = "error_no_approver", _("No Approver Found")
        ERROR_WORKFLOW_INIT = "error_workflow_init", _("Workflow Initialization Failed")

    TERMINAL_STATUSES = (
        Status.APPROVED,
        Status.REJECTED,
        Status.CANCELLED,
        Status.ERROR_NO_APPROVER,
        Status.ERROR_WORKFLOW_INIT,
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="leave_requests",
        help_text=_("Requester"),
    )
    leave_type = models.CharField(
        max_length=20, choices=LeaveType.choices, db_column="type"
    )
    start_date = models.DateField(help_text=_("First day of leave"))
    end_date = models.DateField(help_text=_("Last day of leave (inclusive)"))
    reason = models.TextField(blank=True, default="")
    status = models.CharField(
        max_length=30,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    current_approval_level = models.PositiveIntegerField(
        default=0, help_text=_("Active escalation level; 0 only in an error state")
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="decided_leave_requests",
        db_column="approved_by",
        help_text=_("Actor of the final decision"),
    )
    approval_notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "leave_requests"
        ordering = ["-created_at", "-id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_date__gte=models.F("start_date")),
                name="leave_request_end_after_start",
            ),
        ]

    def __str__(self):
        return f"{self.user_id} - {self.leave_type} ({self.start_date})"

    def clean(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValidationError(_("Start date cannot be after end date."))

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES


class ApprovalWorkflowEntry(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        APPROVED = "approved", _("Approved")
        REJECTED = "rejected", _("Rejected")
        CANCELLED = "cancelled", _("Cancelled")

    class ApproverRole(models.TextChoices):
        DEPARTMENT_MANAGER = "department_manager", _("Department Manager")
        HR_MANAGER = "hr_manager", _("HR Manager")
        OWNER = "owner", _("Owner")
        ADMIN_FALLBACK = "admin_fallback", _("Administrator (fallback)")
        OWNER_AUTO_APPROVED = "owner_auto_approved", _("Auto-approved")

    leave_request = models.ForeignKey(
        LeaveRequest, on_delete=models.CASCADE, related_name="workflow_entries"
    )
    approval_level = models.PositiveIntegerField()
    approver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="leave_approvals",
    )
    approver_role = models.CharField(
        max_length=50, help_text=_("Why this approver was chosen")
    )
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.PENDING
    )
    comments = models.TextField(blank=True, default="")
    approved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "leave_approval_workflow"
        ordering = ["approval_level"]
        constraints = [
            models.UniqueConstraint(
                fields=["leave_request", "approval_level"],
                name="uniq_workflow_entry_per_level",
            ),
            models.UniqueConstraint(
                fields=["leave_request"],
                condition=models.Q(status="pending"),
                name="uniq_pending_workflow_entry",
            ),
        ]

    def __str__(self):
        return f"{self.leave_request_id} L{self.approval_level} ({self.status})"


class LeaveBalance(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="leave_balances",
    )
    year = models.PositiveIntegerField()
    annual_leave = models.IntegerField(default=0)
    sick_leave = models.IntegerField(default=0)
    other_leave = models.IntegerField(default=0)
    long_leave = models.IntegerField(default=0)
    maternity_leave = models.IntegerField(default=0)
    paternity_leave = models.IntegerField(default=0)
    marriage_leave = models.IntegerField(default=0)
    death_leave = models.IntegerField(default=0)
    hajj_umrah_leave = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "leave_balance"
        ordering = ["-year", "user_id"]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "year"], name="uniq_leave_balance_user_year"
            ),
        ]

    def __str__(self):
        return f"{self.user_id} - {self.year}"

    def days_for(self, leave_type: str) -> int:
        return getattr(self, bucket_field(leave_type))


class LeaveBalanceAuditQuerySet(models.QuerySet):
    def update(self, **kwargs):
        msg = "Leave balance audit records are append-only"
        raise TypeError(msg)

    def delete(self):
        msg = "Leave balance audit records are append-only"
        raise TypeError(msg)


class LeaveBalanceAudit(models.Model):
    class AdjustmentType(models.TextChoices):
        APPROVAL_DEDUCTION = "approval_deduction", _("Approved Leave")
        MANUAL_ADD = "manual_add", _("Manual Add")
        MANUAL_REDUCE = "manual_reduce", _("Manual Reduce")
        SYSTEM_INITIALIZATION = "system_initialization", _("System Initialization")

    leave_balance = models.ForeignKey(
        LeaveBalance, on_delete=models.PROTECT, related_name="audit_records"
    )
    adjusted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        db_column="adjusted_by",
    )
    adjustment_type = models.CharField(max_length=30, choices=AdjustmentType.choices)
    adjustment_amount = models.IntegerField(help_text=_("Signed day delta"))
    previous_value = models.IntegerField()
    new_value = models.IntegerField()
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    objects = LeaveBalanceAuditQuerySet.as_manager()

    class Meta:
        db_table = "leave_balance_audit"
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.leave_balance_id} {self.adjustment_type} {self.adjustment_amount}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            msg = "Leave balance audit records are append-only"
            raise TypeError(msg)
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        msg = "Leave balance audit records are append-only"
        raise TypeError(msg)
