from django.apps import AppConfig


class NotificationsConfig(AppConfig):
    """In-app and email notices for leave approvals and decisions."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "hr_leave.notifications"
    verbose_name = "Leave notifications"
