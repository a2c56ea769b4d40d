from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _


class Role(models.Model):
    name = models.CharField(max_length=100, unique=True)
    display_name = models.CharField(max_length=150, blank=True)
    description = models.TextField(blank=True)
    is_system_role = models.BooleanField(
        default=False, help_text=_("Seeded by setup_rbac; not user-editable")
    )
    permissions = models.ManyToManyField(
        "Permission", through="RolePermission", related_name="roles"
    )

    class Meta:
        db_table = "roles"
        ordering = ["name"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.display_name or self.name


class Permission(models.Model):
    name = models.CharField(
        max_length=150, unique=True, help_text=_("action:resource[:scope]")
    )
    description = models.TextField(blank=True)
    category = models.CharField(max_length=100, blank=True)

    class Meta:
        db_table = "permissions"
        ordering = ["name"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.name


class RolePermission(models.Model):
    role = models.ForeignKey(Role, on_delete=models.CASCADE, related_name="grants")
    permission = models.ForeignKey(
        Permission, on_delete=models.CASCADE, related_name="role_grants"
    )

    class Meta:
        db_table = "role_permissions"
        constraints = [
            models.UniqueConstraint(
                fields=["role", "permission"], name="uniq_role_permission"
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.role_id} -> {self.permission_id}"


class UserRole(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="role_assignments",
    )
    role = models.ForeignKey(
        Role, on_delete=models.CASCADE, related_name="user_assignments"
    )

    class Meta:
        db_table = "user_roles"
        constraints = [
            models.UniqueConstraint(fields=["user", "role"], name="uniq_user_role"),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.user_id} -> {self.role_id}"
