from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils.translation import gettext as _

from hr_leave.rbac.catalog import get_catalog
from hr_leave.rbac.models import Permission
from hr_leave.rbac.models import Role
from hr_leave.rbac.models import RolePermission
from hr_leave.rbac.models import UserRole
from hr_leave.rbac.resolver import invalidate_all


class Command(BaseCommand):
    help = _("Create or update roles, permissions and grants from the RBAC catalog")

    def add_arguments(self, parser):
        parser.add_argument(
            "--assign-legacy",
            action="store_true",
            help=_("Also assign each user the role named by their legacy role field"),
        )

    def handle(self, *args, **options):
        catalog = get_catalog()
        with transaction.atomic():
            roles = self._sync_roles(catalog)
            permissions = self._sync_permissions(catalog)
            granted = self._sync_grants(catalog, roles, permissions)
            assigned = self._assign_legacy(roles) if options["assign_legacy"] else 0
        invalidate_all()
        self.stdout.write(
            self.style.SUCCESS(
                f"RBAC setup complete: {len(roles)} roles, "
                f"{len(permissions)} permissions, {granted} new grants, "
                f"{assigned} new assignments"
            )
        )

    def _sync_roles(self, catalog) -> dict[str, Role]:
        roles: dict[str, Role] = {}
        for name in catalog.role_names():
            role, _created = Role.objects.update_or_create(
                name=name,
                defaults={
                    "display_name": name.replace("_", " ").title(),
                    "is_system_role": True,
                },
            )
            roles[name] = role
        return roles

    def _sync_permissions(self, catalog) -> dict[str, Permission]:
        permissions: dict[str, Permission] = {}
        for name, category, description in catalog.permissions:
            permission, _created = Permission.objects.update_or_create(
                name=name,
                defaults={"category": category, "description": description},
            )
            permissions[name] = permission
        return permissions

    def _sync_grants(self, catalog, roles, permissions) -> int:
        """Grant each role every seeded permission one of its patterns matches."""

        granted = 0
        parsed = {name: catalog.parse(name) for name in permissions}
        for role_name, role in roles.items():
            patterns = catalog.patterns_for(role_name)
            for name, permission in permissions.items():
                if any(p.matches(parsed[name]) for p in patterns):
                    _grant, created = RolePermission.objects.get_or_create(
                        role=role, permission=permission
                    )
                    granted += int(created)
        return granted

    def _assign_legacy(self, roles) -> int:
        assigned = 0
        users = get_user_model().objects.filter(is_active=True).exclude(role="")
        for user in users.iterator():
            role = roles.get(user.role)
            if role is None:
                continue
            _assignment, created = UserRole.objects.get_or_create(user=user, role=role)
            assigned += int(created)
        return assigned
