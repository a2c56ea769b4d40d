from rest_framework import serializers

from hr_leave.audit.models import AuditLog


class AuditLogSerializer(serializers.ModelSerializer):
    actor = serializers.SlugRelatedField(slug_field="username", read_only=True)
    actor_name = serializers.SerializerMethodField()

    class Meta:
        model = AuditLog
        fields = [
            "id",
            "action",
            "actor",
            "actor_name",
            "resource_type",
            "resource_id",
            "details",
            "message",
            "created_at",
        ]
        read_only_fields = fields

    def get_actor_name(self, obj) -> str | None:
        if obj.actor is None:
            return None
        return (obj.actor.name or "").strip() or obj.actor.username
