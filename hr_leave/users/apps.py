from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class UsersConfig(AppConfig):
    """Custom user carrying department, legacy role and owner flag."""

    name = "hr_leave.users"
    verbose_name = _("Users")

    def ready(self):
        # Connects the auth-cache invalidation receivers.
        from hr_leave.users import signals  # noqa: F401, PLC0415
