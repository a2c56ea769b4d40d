from django.conf import settings
from django.db import models


class Department(models.Model):
    """A named department with an optional designated manager.

    Users reference departments by ``name`` (``User.department``); the
    approval router resolves the designated manager through this table.
    """

    name = models.CharField(max_length=150, unique=True, db_index=True)
    description = models.TextField(blank=True)
    manager = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="managed_departments",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.name
