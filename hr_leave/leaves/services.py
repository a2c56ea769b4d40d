"""Leave request lifecycle.

``WorkflowEngine`` creates requests, routes them to their first approver and
records approve/reject decisions. Each decision runs in one transaction that
locks the request row, so a concurrent duplicate decision sees the updated
state and fails with ``StateConflictError``. Notifications are queued with
``transaction.on_commit`` and only go out for committed decisions.
"""

from __future__ import annotations

import logging
from datetime import date

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.db import transaction
from django.db.models import Count
from django.db.models import F
from django.utils import timezone

from hr_leave.audit.utils import log_action
from hr_leave.leaves.exceptions import InvalidLeaveRequestError
from hr_leave.leaves.exceptions import NoApproverFoundError
from hr_leave.leaves.exceptions import NotFoundError
from hr_leave.leaves.exceptions import PermissionDeniedError
from hr_leave.leaves.exceptions import StateConflictError
from hr_leave.leaves.exceptions import WorkflowInitError
from hr_leave.leaves.ledger import BalanceLedger
from hr_leave.leaves.models import ApprovalWorkflowEntry
from hr_leave.leaves.models import LeaveRequest
from hr_leave.leaves.models import LeaveType
from hr_leave.leaves.routing import ApprovalRouter
from hr_leave.leaves.routing import RoutingDecision
from hr_leave.notifications.dispatcher import NotificationDispatcher
from hr_leave.rbac.gate import AccessContext
from hr_leave.rbac.gate import AuthorizationGate
from hr_leave.rbac.gate import Decision
from hr_leave.rbac.gate import get_gate
from hr_leave.rbac.resolver import PermissionResolver
from hr_leave.rbac.resolver import get_resolver

logger = logging.getLogger(__name__)

Status = LeaveRequest.Status
EntryStatus = ApprovalWorkflowEntry.Status

DECISION_APPROVE = "approved"
DECISION_REJECT = "rejected"
_DECISION_ALIASES = {
    "approve": DECISION_APPROVE,
    "approved": DECISION_APPROVE,
    "reject": DECISION_REJECT,
    "rejected": DECISION_REJECT,
}

APPROVE_PERMISSION = "approve:leave_request"
CANCEL_PERMISSION = "cancel:leave_request"
RULE_NOT_REQUESTER = "not_requester"
CONFLICT_ACTION = "leave_decision_conflict"


def normalize_decision(decision: str) -> str:
    try:
        return _DECISION_ALIASES[str(decision).strip().lower()]
    except KeyError:
        msg = f"Decision must be 'approve' or 'reject', got {decision!r}"
        raise InvalidLeaveRequestError(msg) from None


class WorkflowEngine:
    def __init__(  # noqa: PLR0913
        self,
        *,
        router: ApprovalRouter | None = None,
        ledger: BalanceLedger | None = None,
        dispatcher: NotificationDispatcher | None = None,
        resolver: PermissionResolver | None = None,
        gate: AuthorizationGate | None = None,
    ):
        self.router = router or ApprovalRouter(resolver=resolver)
        self.ledger = ledger or BalanceLedger()
        self.dispatcher = dispatcher or NotificationDispatcher()
        self._resolver = resolver
        self._gate = gate

    @property
    def resolver(self) -> PermissionResolver:
        return self._resolver if self._resolver is not None else get_resolver()

    @property
    def gate(self) -> AuthorizationGate:
        return self._gate if self._gate is not None else get_gate()

    # Create ----------------------------------------------------------------
    def create_leave_request(  # noqa: PLR0913
        self,
        requester_id: int,
        leave_type: str,
        start_date: date,
        end_date: date,
        reason: str = "",
    ) -> LeaveRequest:
        """Create a request and route it to its first approver.

        Raises ``NoApproverFoundError`` or ``WorkflowInitError`` after the
        request has been committed in the matching error state.
        """

        if leave_type not in LeaveType.values:
            msg = f"Unknown leave type: {leave_type}"
            raise InvalidLeaveRequestError(msg)
        if end_date < start_date:
            msg = "Start date cannot be after end date."
            raise InvalidLeaveRequestError(msg)

        error: Exception | None = None
        with transaction.atomic():
            try:
                requester = get_user_model().objects.get(pk=requester_id, is_active=True)
            except get_user_model().DoesNotExist:
                msg = f"User {requester_id} not found"
                raise NotFoundError(msg) from None

            leave_request = LeaveRequest.objects.create(
                user=requester,
                leave_type=leave_type,
                start_date=start_date,
                end_date=end_date,
                reason=reason or "",
                status=Status.PENDING,
            )
            try:
                with transaction.atomic():
                    routing = self.router.select_approver(requester)
                    self._start_workflow(leave_request, requester, routing)
            except DatabaseError as exc:
                logger.exception(
                    "Workflow initialization failed for leave request %s",
                    leave_request.pk,
                )
                leave_request.refresh_from_db()
                self._mark_error(
                    leave_request,
                    Status.ERROR_WORKFLOW_INIT,
                    f"Workflow initialization failed: {exc}",
                )
                error = WorkflowInitError(
                    leave_request.approval_notes, leave_request_id=leave_request.pk
                )
            else:
                if routing.no_approver:
                    logger.warning(
                        "No approver found for leave request %s (user %s)",
                        leave_request.pk,
                        requester.pk,
                    )
                    self._mark_error(
                        leave_request, Status.ERROR_NO_APPROVER, routing.reason
                    )
                    error = NoApproverFoundError(
                        routing.reason, leave_request_id=leave_request.pk
                    )

        if error is not None:
            raise error
        return leave_request

    def _start_workflow(
        self, leave_request: LeaveRequest, requester, routing: RoutingDecision
    ) -> None:
        if routing.no_approver:
            return
        if routing.auto_approve:
            now = timezone.now()
            ApprovalWorkflowEntry.objects.create(
                leave_request=leave_request,
                approval_level=routing.level,
                approver=requester,
                approver_role=routing.approver_role,
                status=EntryStatus.APPROVED,
                comments=routing.reason,
                approved_at=now,
            )
            leave_request.status = Status.APPROVED
            leave_request.current_approval_level = routing.level
            leave_request.approved_by = requester
            leave_request.approval_notes = routing.reason
            leave_request.save(
                update_fields=[
                    "status",
                    "current_approval_level",
                    "approved_by",
                    "approval_notes",
                    "updated_at",
                ]
            )
            self.ledger.apply_approval(leave_request, requester.pk)
            logger.info("Leave request %s auto-approved", leave_request.pk)
            self._notify_status(leave_request, DECISION_APPROVE, requester, routing.level)
            return

        self._open_level(leave_request, routing)

    def _open_level(self, leave_request: LeaveRequest, routing: RoutingDecision) -> None:
        ApprovalWorkflowEntry.objects.create(
            leave_request=leave_request,
            approval_level=routing.level,
            approver=routing.approver,
            approver_role=routing.approver_role,
            status=EntryStatus.PENDING,
        )
        leave_request.current_approval_level = routing.level
        leave_request.save(update_fields=["current_approval_level", "updated_at"])
        logger.info(
            "Leave request %s routed to user %s at level %s (%s)",
            leave_request.pk,
            routing.approver.pk,
            routing.level,
            routing.approver_role,
        )
        approver = routing.approver
        level = routing.level
        transaction.on_commit(
            lambda: self.dispatcher.send_leave_approval_notification(
                leave_request, approver, level
            )
        )

    @staticmethod
    def _mark_error(leave_request: LeaveRequest, status: str, notes: str) -> None:
        leave_request.status = status
        leave_request.current_approval_level = 0
        leave_request.approval_notes = notes
        leave_request.save(
            update_fields=[
                "status",
                "current_approval_level",
                "approval_notes",
                "updated_at",
            ]
        )

    # Decide ----------------------------------------------------------------
    def decide(  # noqa: PLR0913
        self,
        leave_request_id: int,
        level: int,
        actor_id: int,
        decision: str,
        comments: str = "",
    ) -> LeaveRequest:
        """Record ``actor_id``'s approve/reject decision at ``level``.

        Conflicts and denials are written to the audit log and raised after
        the transaction commits, leaving the request untouched.
        """

        decision = normalize_decision(decision)
        error: Exception | None = None
        with transaction.atomic():
            leave_request = self._lock_request(leave_request_id)
            entry = None
            try:
                entry = self._pending_entry_for(leave_request, level, actor_id)
            except StateConflictError as exc:
                self._record_conflict(leave_request, actor_id, level, decision, exc)
                error = exc

            if entry is not None:
                auth = self.resolver.load_auth_data(actor_id)
                verdict = self.gate.check(
                    auth.effective_role_names,
                    auth.effective_permission_names,
                    APPROVE_PERMISSION,
                    AccessContext.for_auth(
                        auth,
                        resource_type="leave_approval",
                        resource_id=entry.pk,
                        allow_owner=True,
                    ),
                )
                if not verdict.allowed:
                    error = PermissionDeniedError(
                        APPROVE_PERMISSION, rule=verdict.rule, user_id=actor_id
                    )
                else:
                    self._apply_decision(leave_request, entry, actor_id, decision, comments)

        if error is not None:
            raise error
        return leave_request

    def _lock_request(self, leave_request_id: int) -> LeaveRequest:
        try:
            return LeaveRequest.objects.select_for_update().get(pk=leave_request_id)
        except LeaveRequest.DoesNotExist:
            msg = f"Leave request {leave_request_id} not found"
            raise NotFoundError(msg) from None

    @staticmethod
    def _pending_entry_for(
        leave_request: LeaveRequest, level: int, actor_id: int
    ) -> ApprovalWorkflowEntry:
        if leave_request.status != Status.PENDING:
            msg = (
                f"Leave request {leave_request.pk} is {leave_request.status}; "
                "no decision is pending"
            )
            raise StateConflictError(msg)
        if leave_request.current_approval_level != level:
            msg = (
                f"Decision submitted for level {level} but leave request "
                f"{leave_request.pk} is at level {leave_request.current_approval_level}"
            )
            raise StateConflictError(msg)
        entry = (
            ApprovalWorkflowEntry.objects.select_for_update()
            .filter(
                leave_request=leave_request,
                approval_level=level,
                status=EntryStatus.PENDING,
            )
            .first()
        )
        if entry is None:
            msg = f"No pending approval at level {level} for leave request {leave_request.pk}"
            raise StateConflictError(msg)
        if entry.approver_id != actor_id:
            msg = f"User {actor_id} is not the approver for level {level}"
            raise StateConflictError(msg)
        return entry

    def _apply_decision(  # noqa: PLR0913
        self,
        leave_request: LeaveRequest,
        entry: ApprovalWorkflowEntry,
        actor_id: int,
        decision: str,
        comments: str,
    ) -> None:
        level = entry.approval_level
        entry.status = decision
        entry.comments = comments or ""
        entry.approved_at = timezone.now()
        entry.save(update_fields=["status", "comments", "approved_at"])
        actor = entry.approver

        if decision == DECISION_REJECT:
            self._finish(leave_request, Status.REJECTED, actor, comments)
            logger.info("Leave request %s rejected at level %s", leave_request.pk, level)
            self._notify_status(leave_request, DECISION_REJECT, actor, level)
            return

        next_routing = self.router.next_approver(leave_request, level)
        if next_routing is not None:
            self._open_level(leave_request, next_routing)
            return

        self._finish(leave_request, Status.APPROVED, actor, comments)
        self.ledger.apply_approval(leave_request, actor_id)
        logger.info("Leave request %s approved at level %s", leave_request.pk, level)
        self._notify_status(leave_request, DECISION_APPROVE, actor, level)

    @staticmethod
    def _finish(leave_request: LeaveRequest, status: str, actor, comments: str) -> None:
        leave_request.status = status
        leave_request.approved_by = actor
        leave_request.approval_notes = comments or ""
        leave_request.save(
            update_fields=["status", "approved_by", "approval_notes", "updated_at"]
        )

    @staticmethod
    def _record_conflict(leave_request, actor_id, level, decision, exc) -> None:
        actor_exists = get_user_model().objects.filter(pk=actor_id).exists()
        log_action(
            CONFLICT_ACTION,
            actor_id=actor_id if actor_exists else None,
            message=str(exc),
            resource_type="leave_request",
            resource_id=leave_request.pk,
            details={"level": level, "decision": decision, "status": leave_request.status},
        )

    def _notify_status(self, leave_request, decision: str, actor, level: int) -> None:
        requester = leave_request.user
        transaction.on_commit(
            lambda: self.dispatcher.send_leave_status_update(
                leave_request, requester, decision, actor, level
            )
        )

    # Cancel ----------------------------------------------------------------
    def cancel(self, leave_request_id: int, actor_id: int) -> LeaveRequest:
        """Withdraw a pending request. Only the requester may cancel.

        As in ``decide``, a denial or conflict is audited and raised after the
        transaction commits; the open workflow step is closed as cancelled.
        """

        error: Exception | None = None
        with transaction.atomic():
            leave_request = self._lock_request(leave_request_id)
            level = leave_request.current_approval_level
            if leave_request.user_id != actor_id:
                self.gate.record(
                    Decision(
                        allowed=False,
                        rule=RULE_NOT_REQUESTER,
                        permission=CANCEL_PERMISSION,
                    ),
                    AccessContext(
                        user_id=actor_id,
                        resource_type="leave_request",
                        resource_id=leave_request.pk,
                    ),
                )
                error = PermissionDeniedError(
                    CANCEL_PERMISSION, rule=RULE_NOT_REQUESTER, user_id=actor_id
                )
            elif leave_request.status != Status.PENDING:
                msg = (
                    f"Leave request {leave_request.pk} is {leave_request.status} "
                    "and can no longer be cancelled"
                )
                error = StateConflictError(msg)
                self._record_conflict(
                    leave_request, actor_id, level, Status.CANCELLED.value, error
                )
            else:
                leave_request.status = Status.CANCELLED
                leave_request.save(update_fields=["status", "updated_at"])
                leave_request.workflow_entries.filter(status=EntryStatus.PENDING).update(
                    status=EntryStatus.CANCELLED, comments="Cancelled by requester"
                )
                logger.info("Leave request %s cancelled by requester", leave_request.pk)
                self._notify_status(
                    leave_request, Status.CANCELLED, leave_request.user, level
                )

        if error is not None:
            raise error
        return leave_request

    # Queries ---------------------------------------------------------------
    def get_leave_request(self, leave_request_id: int) -> LeaveRequest:
        try:
            return LeaveRequest.objects.select_related("user", "approved_by").get(
                pk=leave_request_id
            )
        except LeaveRequest.DoesNotExist:
            msg = f"Leave request {leave_request_id} not found"
            raise NotFoundError(msg) from None

    def get_workflow(self, leave_request_id: int) -> list[ApprovalWorkflowEntry]:
        leave_request = self.get_leave_request(leave_request_id)
        return list(
            leave_request.workflow_entries.select_related("approver").order_by(
                "approval_level"
            )
        )

    def get_pending_approvals_for(self, user_id: int):
        """Entries awaiting ``user_id`` at their request's current level."""

        return (
            ApprovalWorkflowEntry.objects.filter(
                approver_id=user_id,
                status=EntryStatus.PENDING,
                leave_request__status=Status.PENDING,
                approval_level=F("leave_request__current_approval_level"),
            )
            .select_related("leave_request", "leave_request__user")
            .order_by("created_at", "id")
        )

    def stats(self) -> dict[str, int]:
        counts = dict.fromkeys(Status.values, 0)
        rows = LeaveRequest.objects.values("status").annotate(total=Count("id"))
        for row in rows:
            counts[row["status"]] = row["total"]
        counts["total"] = sum(counts.values())
        return counts
