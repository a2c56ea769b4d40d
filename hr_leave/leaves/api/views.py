"""Leaves API endpoints.

Views stay thin: input is validated by serializers, state changes go through
``WorkflowEngine``/``BalanceLedger`` and domain errors are translated by
``translate_errors``.
"""

import logging

from django.contrib.auth import get_user_model
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter
from drf_spectacular.utils import extend_schema
from rest_framework import generics
from rest_framework import mixins
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.viewsets import GenericViewSet

from hr_leave.audit.utils import log_action
from hr_leave.leaves.api.errors import translate_errors
from hr_leave.leaves.api.filters import LeaveRequestFilter
from hr_leave.leaves.api.serializers import ApprovalWorkflowEntrySerializer
from hr_leave.leaves.api.serializers import BalanceAdjustmentSerializer
from hr_leave.leaves.api.serializers import DecisionSerializer
from hr_leave.leaves.api.serializers import LeaveBalanceAuditSerializer
from hr_leave.leaves.api.serializers import LeaveBalanceSerializer
from hr_leave.leaves.api.serializers import LeaveRequestCreateSerializer
from hr_leave.leaves.api.serializers import LeaveRequestSerializer
from hr_leave.leaves.api.serializers import PendingApprovalSerializer
from hr_leave.leaves.ledger import BalanceLedger
from hr_leave.leaves.models import ApprovalWorkflowEntry
from hr_leave.leaves.models import LeaveRequest
from hr_leave.leaves.services import WorkflowEngine
from hr_leave.rbac.api.permissions import HasPermission
from hr_leave.rbac.api.permissions import get_request_auth
from hr_leave.rbac.gate import AccessContext
from hr_leave.rbac.gate import get_gate

logger = logging.getLogger(__name__)

CanCreateLeave = HasPermission.build("create:leave_request")
CanReadAllLeave = HasPermission.build("read:leave_request:all")
CanReadLeave = HasPermission.build(
    "read:leave_request:all",
    resource_type="leave_request",
    allow_owner=True,
    allow_department_scope=True,
)
CanCancelLeave = HasPermission.build(
    "cancel:leave_request", resource_type="leave_request", allow_owner=True
)
CanUpdateBalance = HasPermission.build("update:leave_balance")


def _client_ip(request) -> str:
    return request.META.get("REMOTE_ADDR", "") or ""


def _allowed(request, permission: str) -> bool:
    auth = get_request_auth(request)
    if auth is None:
        return False
    return get_gate().check(
        auth.effective_role_names,
        auth.effective_permission_names,
        permission,
        AccessContext.for_auth(auth),
    ).allowed


class LeaveRequestViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    GenericViewSet,
):
    """Leave requests and their approval workflow.

    - list: own requests, or every request with ``read:leave_request:all``
    - create: submit a request; it is routed to its first approver
    - decide / cancel: state transitions handled by the workflow engine
    """

    serializer_class = LeaveRequestSerializer
    lookup_value_regex = r"\d+"
    filter_backends = [DjangoFilterBackend]
    filterset_class = LeaveRequestFilter

    permission_map = {
        "create": [IsAuthenticated, CanCreateLeave],
        "retrieve": [IsAuthenticated, CanReadLeave],
        "workflow": [IsAuthenticated, CanReadLeave],
        "cancel": [IsAuthenticated, CanCancelLeave],
        "stats": [IsAuthenticated, CanReadAllLeave],
    }

    def get_permissions(self):
        classes = self.permission_map.get(self.action, [IsAuthenticated])
        return [permission() for permission in classes]

    def get_queryset(self):
        qs = LeaveRequest.objects.select_related("user", "approved_by")
        if getattr(self, "swagger_fake_view", False):
            return qs.none()
        if self.action == "list":
            if not _allowed(self.request, "read:leave_request:all"):
                qs = qs.filter(user=self.request.user)
        return qs

    def get_engine(self) -> WorkflowEngine:
        return WorkflowEngine()

    @extend_schema(request=LeaveRequestCreateSerializer, responses=LeaveRequestSerializer)
    def create(self, request, *args, **kwargs):
        serializer = LeaveRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        with translate_errors():
            leave_request = self.get_engine().create_leave_request(
                request.user.pk, **serializer.validated_data
            )
        log_action(
            "leave_request_created",
            actor=request.user,
            message=(
                f"Leave request created: {leave_request.leave_type} "
                f"{leave_request.start_date}..{leave_request.end_date}"
            ),
            resource_type="leave_request",
            resource_id=leave_request.pk,
            details={"status": leave_request.status},
            ip_address=_client_ip(request),
        )
        return Response(
            LeaveRequestSerializer(leave_request).data, status=status.HTTP_201_CREATED
        )

    @extend_schema(request=None, responses=ApprovalWorkflowEntrySerializer(many=True))
    @action(detail=True, methods=["get"])
    def workflow(self, request, pk=None):
        with translate_errors():
            entries = self.get_engine().get_workflow(int(pk))
        return Response(ApprovalWorkflowEntrySerializer(entries, many=True).data)

    @extend_schema(request=DecisionSerializer, responses=LeaveRequestSerializer)
    @action(detail=True, methods=["post"])
    def decide(self, request, pk=None):
        """Approve or reject the pending step at ``level``."""

        serializer = DecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        with translate_errors():
            leave_request = self.get_engine().decide(
                int(pk),
                data["level"],
                request.user.pk,
                data["decision"],
                data.get("comments", ""),
            )
        return Response(LeaveRequestSerializer(leave_request).data)

    @extend_schema(request=None, responses=LeaveRequestSerializer)
    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        with translate_errors():
            leave_request = self.get_engine().cancel(int(pk), request.user.pk)
        return Response(LeaveRequestSerializer(leave_request).data)

    @extend_schema(request=None, responses=OpenApiTypes.OBJECT)
    @action(detail=False, methods=["get"])
    def stats(self, request):
        return Response(self.get_engine().stats())


class PendingApprovalsView(generics.ListAPIView):
    """Workflow steps waiting for the current user's decision."""

    serializer_class = PendingApprovalSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return ApprovalWorkflowEntry.objects.none()
        return WorkflowEngine().get_pending_approvals_for(self.request.user.pk)


class LeaveBalanceView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        parameters=[
            OpenApiParameter("year", int, required=False),
            OpenApiParameter("user_id", int, required=False),
        ],
        responses=LeaveBalanceSerializer,
    )
    def get(self, request):
        """Balance for ``year`` (default: current year).

        Reading someone else's balance requires ``read:leave_balance:all``.
        """

        params = request.query_params
        try:
            year = int(params["year"]) if "year" in params else None
            user_id = int(params.get("user_id", request.user.pk))
        except (TypeError, ValueError) as exc:
            msg = "year and user_id must be integers"
            raise ValidationError({"detail": msg}) from exc

        if user_id != request.user.pk:
            auth = get_request_auth(request)
            with translate_errors():
                get_gate().authorize(auth, "read:leave_balance:all")
            if not get_user_model().objects.filter(pk=user_id).exists():
                raise NotFound({"detail": f"User {user_id} not found"})

        balance = BalanceLedger().get_balance(user_id, year, actor_id=request.user.pk)
        return Response(LeaveBalanceSerializer(balance).data)


class BalanceAdjustView(APIView):
    permission_classes = [IsAuthenticated, CanUpdateBalance]

    @extend_schema(
        request=BalanceAdjustmentSerializer, responses=LeaveBalanceAuditSerializer
    )
    def post(self, request):
        serializer = BalanceAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        if not get_user_model().objects.filter(pk=data["user_id"]).exists():
            raise NotFound({"detail": f"User {data['user_id']} not found"})

        with translate_errors():
            record = BalanceLedger().adjust(
                data["user_id"],
                data["leave_type"],
                data["kind"],
                data["amount"],
                data["reason"],
                request.user.pk,
                year=data.get("year"),
            )
        logger.info(
            "User %s adjusted %s balance of user %s: %s %s",
            request.user.pk,
            data["leave_type"],
            data["user_id"],
            data["kind"],
            data["amount"],
        )
        return Response(
            LeaveBalanceAuditSerializer(record).data, status=status.HTTP_201_CREATED
        )
