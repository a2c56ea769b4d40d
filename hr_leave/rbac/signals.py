from __future__ import annotations

from django.db import transaction
from django.db.models.signals import post_delete
from django.db.models.signals import post_save
from django.dispatch import receiver

from hr_leave.rbac.models import Permission
from hr_leave.rbac.models import Role
from hr_leave.rbac.models import RolePermission
from hr_leave.rbac.models import UserRole
from hr_leave.rbac.resolver import invalidate_all
from hr_leave.rbac.resolver import invalidate_user


@receiver(post_save, sender=UserRole)
@receiver(post_delete, sender=UserRole)
def invalidate_on_assignment_change(sender, instance, **kwargs):
    user_id = instance.user_id
    invalidate_user(user_id)
    transaction.on_commit(lambda: invalidate_user(user_id))


@receiver(post_save, sender=RolePermission)
@receiver(post_delete, sender=RolePermission)
@receiver(post_save, sender=Role)
@receiver(post_delete, sender=Role)
@receiver(post_save, sender=Permission)
@receiver(post_delete, sender=Permission)
def invalidate_on_grant_change(sender, instance, **kwargs):
    # A grant change can touch any number of users.
    invalidate_all()
    transaction.on_commit(invalidate_all)
