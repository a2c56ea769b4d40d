import importlib

from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class RbacConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "hr_leave.rbac"
    verbose_name = _("Roles and Permissions")

    def ready(self) -> None:
        from hr_leave.rbac.catalog import configure  # noqa: PLC0415

        # Raises ConfigurationError on an invalid catalog and stops start-up.
        configure()
        importlib.import_module("hr_leave.rbac.signals")
        return super().ready()
