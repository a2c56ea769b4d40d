from django.conf import settings
from django.db import models


class AuditLog(models.Model):
    """One authorization decision or workflow event.

    ``resource_type``/``resource_id`` identify what the event was about
    (``leave_request``, ``leave_approval``...); ``details`` holds the
    structured payload, e.g. ``{"permission": ..., "allowed": ..., "rule": ...}``
    for permission checks.
    """

    action = models.CharField(max_length=100, db_index=True)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_events",
    )
    resource_type = models.CharField(max_length=64, blank=True)
    resource_id = models.BigIntegerField(null=True, blank=True)
    details = models.JSONField(default=dict, blank=True)
    message = models.TextField(blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = "audit_logs"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(
                fields=["resource_type", "resource_id"],
                name="audit_resource_idx",
            ),
        ]

    def __str__(self) -> str:
        who = self.actor_id or "system"
        target = f"{self.resource_type}#{self.resource_id}" if self.resource_type else "-"
        return f"[{self.created_at:%Y-%m-%d %H:%M:%S}] {who} {self.action} {target}"
