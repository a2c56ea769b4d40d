from django.urls import include
from django.urls import path
from rest_framework.routers import SimpleRouter

from hr_leave.leaves.api.views import BalanceAdjustView
from hr_leave.leaves.api.views import LeaveBalanceView
from hr_leave.leaves.api.views import LeaveRequestViewSet
from hr_leave.leaves.api.views import PendingApprovalsView

router = SimpleRouter()
router.register("requests", LeaveRequestViewSet, basename="leave-request")

urlpatterns = [
    path("", include(router.urls)),
    path(
        "approvals/pending/",
        PendingApprovalsView.as_view(),
        name="leave-approvals-pending",
    ),
    path("balance/", LeaveBalanceView.as_view(), name="leave-balance"),
    path("balance/adjust/", BalanceAdjustView.as_view(), name="leave-balance-adjust"),
]
