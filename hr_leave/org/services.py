from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import transaction

from hr_leave.org.models import Department

if TYPE_CHECKING:
    from hr_leave.users.models import User

logger = logging.getLogger(__name__)

MANAGER_ELIGIBLE_ROLES = ("manager", "admin")


@transaction.atomic
def assign_department_manager(user: User, *, overwrite: bool = False) -> Department | None:
    """Make ``user`` the designated manager of their own department.

    Only users whose legacy role is manager or admin qualify. The department
    row is created when missing. An existing manager is kept unless
    ``overwrite`` is set. Returns the department, or None when the user does
    not qualify.
    """

    if user.role not in MANAGER_ELIGIBLE_ROLES or not user.department:
        return None

    department, _created = Department.objects.select_for_update().get_or_create(
        name=user.department
    )
    if department.manager_id and not overwrite:
        return department
    if department.manager_id != user.pk:
        department.manager = user
        department.save(update_fields=["manager", "updated_at"])
        logger.info(
            "Assigned user %s as manager of department %s", user.pk, department.name
        )
    return department
