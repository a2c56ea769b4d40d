from django.contrib import admin

from hr_leave.leaves import models


class ApprovalWorkflowEntryInline(admin.TabularInline):
    model = models.ApprovalWorkflowEntry
    extra = 0
    raw_id_fields = ["approver"]
    readonly_fields = ["created_at"]


@admin.register(models.LeaveRequest)
class LeaveRequestAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "user",
        "leave_type",
        "start_date",
        "end_date",
        "status",
        "current_approval_level",
    ]
    search_fields = ["reason", "approval_notes", "user__email"]
    list_filter = ["status", "leave_type", "start_date"]
    raw_id_fields = ["user", "approved_by"]
    inlines = [ApprovalWorkflowEntryInline]


@admin.register(models.ApprovalWorkflowEntry)
class ApprovalWorkflowEntryAdmin(admin.ModelAdmin):
    list_display = ["id", "leave_request", "approval_level", "approver", "status"]
    list_filter = ["status", "approver_role"]
    raw_id_fields = ["leave_request", "approver"]


@admin.register(models.LeaveBalance)
class LeaveBalanceAdmin(admin.ModelAdmin):
    list_display = ["id", "user", "year", "annual_leave", "sick_leave", "other_leave"]
    list_filter = ["year"]
    search_fields = ["user__email", "user__name"]
    raw_id_fields = ["user"]


@admin.register(models.LeaveBalanceAudit)
class LeaveBalanceAuditAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "leave_balance",
        "adjustment_type",
        "adjustment_amount",
        "previous_value",
        "new_value",
        "created_at",
    ]
    list_filter = ["adjustment_type"]
    search_fields = ["notes"]

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
