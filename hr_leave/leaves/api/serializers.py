from django.utils.translation import gettext_lazy as _
from rest_framework import serializers

from hr_leave.leaves.ledger import ADJUST_ADD
from hr_leave.leaves.ledger import ADJUST_REDUCE
from hr_leave.leaves.models import BALANCE_TYPES
from hr_leave.leaves.models import ApprovalWorkflowEntry
from hr_leave.leaves.models import LeaveBalance
from hr_leave.leaves.models import LeaveBalanceAudit
from hr_leave.leaves.models import LeaveRequest
from hr_leave.leaves.models import LeaveType


class LeaveRequestSerializer(serializers.ModelSerializer):
    days = serializers.IntegerField(read_only=True)
    user_name = serializers.CharField(source="user.display_name", read_only=True)

    class Meta:
        model = LeaveRequest
        fields = (
            "id",
            "user",
            "user_name",
            "leave_type",
            "start_date",
            "end_date",
            "days",
            "reason",
            "status",
            "current_approval_level",
            "approved_by",
            "approval_notes",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class LeaveRequestCreateSerializer(serializers.Serializer):
    """Input for a new request. ``type`` is accepted as an alias of ``leave_type``."""

    leave_type = serializers.ChoiceField(choices=LeaveType.choices, required=False)
    type = serializers.ChoiceField(
        choices=LeaveType.choices, required=False, write_only=True
    )
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    reason = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):
        alias = attrs.pop("type", None)
        if not attrs.get("leave_type"):
            if not alias:
                raise serializers.ValidationError(
                    {"leave_type": _("This field is required.")}
                )
            attrs["leave_type"] = alias
        if attrs["start_date"] > attrs["end_date"]:
            msg = _("Start date cannot be after end date.")
            raise serializers.ValidationError(msg)
        return attrs


class ApprovalWorkflowEntrySerializer(serializers.ModelSerializer):
    approver_name = serializers.CharField(source="approver.display_name", read_only=True)

    class Meta:
        model = ApprovalWorkflowEntry
        fields = (
            "id",
            "leave_request",
            "approval_level",
            "approver",
            "approver_name",
            "approver_role",
            "status",
            "comments",
            "approved_at",
            "created_at",
        )
        read_only_fields = fields


class PendingApprovalSerializer(ApprovalWorkflowEntrySerializer):
    leave_request = LeaveRequestSerializer(read_only=True)


class DecisionSerializer(serializers.Serializer):
    level = serializers.IntegerField(min_value=1)
    decision = serializers.ChoiceField(
        choices=["approve", "approved", "reject", "rejected"]
    )
    comments = serializers.CharField(required=False, allow_blank=True, default="")


class LeaveBalanceSerializer(serializers.ModelSerializer):
    class Meta:
        model = LeaveBalance
        fields = (
            "id",
            "user",
            "year",
            *(f"{leave_type}_leave" for leave_type in BALANCE_TYPES),
            "updated_at",
        )
        read_only_fields = fields


class BalanceAdjustmentSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    leave_type = serializers.ChoiceField(choices=list(BALANCE_TYPES))
    kind = serializers.ChoiceField(choices=[ADJUST_ADD, ADJUST_REDUCE])
    amount = serializers.IntegerField(min_value=1)
    reason = serializers.CharField()
    year = serializers.IntegerField(required=False, min_value=1900)


class LeaveBalanceAuditSerializer(serializers.ModelSerializer):
    class Meta:
        model = LeaveBalanceAudit
        fields = (
            "id",
            "leave_balance",
            "adjusted_by",
            "adjustment_type",
            "adjustment_amount",
            "previous_value",
            "new_value",
            "notes",
            "created_at",
        )
        read_only_fields = fields
