from django.contrib import admin
from django.contrib.auth import get_user_model

from hr_leave.org.models import Department


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ["name", "manager", "member_count", "is_active"]
    search_fields = ["name", "manager__username"]
    list_filter = ["is_active"]
    raw_id_fields = ["manager"]

    @admin.display(description="Members")
    def member_count(self, obj) -> int:
        return get_user_model().objects.filter(department=obj.name, is_active=True).count()
