import django_filters

from hr_leave.leaves.models import LeaveRequest


class LeaveRequestFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=LeaveRequest.Status.choices)
    leave_type = django_filters.CharFilter(lookup_expr="iexact")
    user = django_filters.NumberFilter(field_name="user_id")
    department = django_filters.CharFilter(
        field_name="user__department", lookup_expr="iexact"
    )
    starts_after = django_filters.DateFilter(field_name="start_date", lookup_expr="gte")
    starts_before = django_filters.DateFilter(field_name="start_date", lookup_expr="lte")

    class Meta:
        model = LeaveRequest
        fields = ["status", "leave_type", "user", "department"]
