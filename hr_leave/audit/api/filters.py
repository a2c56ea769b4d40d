import django_filters

from hr_leave.audit.models import AuditLog


class AuditLogFilter(django_filters.FilterSet):
    action = django_filters.CharFilter(field_name="action")
    actor = django_filters.NumberFilter(field_name="actor_id")
    resource_type = django_filters.CharFilter(field_name="resource_type")
    resource_id = django_filters.NumberFilter(field_name="resource_id")
    since = django_filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")

    class Meta:
        model = AuditLog
        fields = ["action", "actor", "resource_type", "resource_id", "since"]
