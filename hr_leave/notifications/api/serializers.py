from rest_framework import serializers

from hr_leave.notifications.models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    is_read = serializers.BooleanField(read_only=True)

    class Meta:
        model = Notification
        fields = (
            "id",
            "event",
            "leave_request",
            "level",
            "title",
            "message",
            "is_read",
            "read_at",
            "created_at",
        )
        read_only_fields = fields
