import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="LeaveRequest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "leave_type",
                    models.CharField(
                        choices=[
                            ("annual", "Annual"),
                            ("sick", "Sick"),
                            ("long", "Long"),
                            ("maternity", "Maternity"),
                            ("paternity", "Paternity"),
                            ("marriage", "Marriage"),
                            ("death", "Death"),
                            ("hajj_umrah", "Hajj / Umrah"),
                        ],
                        db_column="type",
                        max_length=20,
                    ),
                ),
                ("start_date", models.DateField(help_text="First day of leave")),
                ("end_date", models.DateField(help_text="Last day of leave (inclusive)")),
                ("reason", models.TextField(blank=True, default="")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                            ("cancelled", "Cancelled"),
                            ("error_no_approver", "No Approver Found"),
                            ("error_workflow_init", "Workflow Initialization Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=30,
                    ),
                ),
                (
                    "current_approval_level",
                    models.PositiveIntegerField(
                        default=0, help_text="Active escalation level; 0 only in an error state"
                    ),
                ),
                ("approval_notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "approved_by",
                    models.ForeignKey(
                        blank=True,
                        db_column="approved_by",
                        help_text="Actor of the final decision",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="decided_leave_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="Requester",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="leave_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "leave_requests",
                "ordering": ["-created_at", "-id"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("end_date__gte", models.F("start_date"))),
                        name="leave_request_end_after_start",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ApprovalWorkflowEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("approval_level", models.PositiveIntegerField()),
                ("approver_role", models.CharField(help_text="Why this approver was chosen", max_length=50)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("approved", "Approved"), ("rejected", "Rejected"), ("cancelled", "Cancelled")],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("comments", models.TextField(blank=True, default="")),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "approver",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="leave_approvals",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "leave_request",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="workflow_entries",
                        to="leaves.leaverequest",
                    ),
                ),
            ],
            options={
                "db_table": "leave_approval_workflow",
                "ordering": ["approval_level"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("leave_request", "approval_level"),
                        name="uniq_workflow_entry_per_level",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("status", "pending")),
                        fields=("leave_request",),
                        name="uniq_pending_workflow_entry",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="LeaveBalance",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("year", models.PositiveIntegerField()),
                ("annual_leave", models.IntegerField(default=0)),
                ("sick_leave", models.IntegerField(default=0)),
                ("other_leave", models.IntegerField(default=0)),
                ("long_leave", models.IntegerField(default=0)),
                ("maternity_leave", models.IntegerField(default=0)),
                ("paternity_leave", models.IntegerField(default=0)),
                ("marriage_leave", models.IntegerField(default=0)),
                ("death_leave", models.IntegerField(default=0)),
                ("hajj_umrah_leave", models.IntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="leave_balances",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "leave_balance",
                "ordering": ["-year", "user_id"],
                "constraints": [
                    models.UniqueConstraint(fields=("user", "year"), name="uniq_leave_balance_user_year"),
                ],
            },
        ),
        migrations.CreateModel(
            name="LeaveBalanceAudit",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "adjustment_type",
                    models.CharField(
                        choices=[
                            ("approval_deduction", "Approved Leave"),
                            ("manual_add", "Manual Add"),
                            ("manual_reduce", "Manual Reduce"),
                            ("system_initialization", "System Initialization"),
                        ],
                        max_length=30,
                    ),
                ),
                ("adjustment_amount", models.IntegerField(help_text="Signed day delta")),
                ("previous_value", models.IntegerField()),
                ("new_value", models.IntegerField()),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "adjusted_by",
                    models.ForeignKey(
                        blank=True,
                        db_column="adjusted_by",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "leave_balance",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="audit_records",
                        to="leaves.leavebalance",
                    ),
                ),
            ],
            options={
                "db_table": "leave_balance_audit",
                "ordering": ["created_at", "id"],
            },
        ),
    ]
