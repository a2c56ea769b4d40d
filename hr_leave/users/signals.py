from __future__ import annotations

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models.signals import post_delete
from django.db.models.signals import post_save
from django.dispatch import receiver

from hr_leave.rbac.resolver import invalidate_user


@receiver(post_save, sender=get_user_model())
@receiver(post_delete, sender=get_user_model())
def invalidate_cached_auth_data(sender, instance, **kwargs):
    """Drop cached authorization data whenever a user row changes.

    Legacy role, department and the active flag all feed the resolver, so any
    save counts as a profile mutation.
    """

    user_id = instance.pk
    invalidate_user(user_id)
    # Again after commit so a concurrent reader cannot re-cache the old row.
    transaction.on_commit(lambda: invalidate_user(user_id))
