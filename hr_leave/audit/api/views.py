from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter
from drf_spectacular.utils import extend_schema
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from hr_leave.audit.api.filters import AuditLogFilter
from hr_leave.audit.api.serializers import AuditLogSerializer
from hr_leave.audit.models import AuditLog
from hr_leave.rbac.api.permissions import HasPermission

DEFAULT_LIMIT = 5
MAX_LIMIT = 50


def _parse_limit(raw) -> int:
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    return max(1, min(limit, MAX_LIMIT))


class RecentAuditView(APIView):
    """Latest audit events: permission checks, leave workflow events, conflicts."""

    permission_classes = [IsAuthenticated, HasPermission.build("read:audit_log")]

    @extend_schema(
        parameters=[
            OpenApiParameter("limit", OpenApiTypes.INT, description="1-50, default 5"),
            OpenApiParameter("action", OpenApiTypes.STR),
            OpenApiParameter("actor", OpenApiTypes.INT),
            OpenApiParameter("resource_type", OpenApiTypes.STR),
            OpenApiParameter("resource_id", OpenApiTypes.INT),
        ],
        responses=OpenApiTypes.OBJECT,
    )
    def get(self, request):
        limit = _parse_limit(request.query_params.get("limit", DEFAULT_LIMIT))
        filterset = AuditLogFilter(
            request.query_params,
            queryset=AuditLog.objects.select_related("actor"),
        )
        if not filterset.is_valid():
            raise ValidationError(filterset.errors)
        rows = filterset.qs[:limit]
        return Response(
            {"results": AuditLogSerializer(rows, many=True).data, "limit": limit}
        )
