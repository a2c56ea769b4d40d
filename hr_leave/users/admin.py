from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin
from django.utils.translation import gettext_lazy as _

from hr_leave.users.models import User


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    fieldsets = (
        *DjangoUserAdmin.fieldsets,
        (_("Organization"), {"fields": ("department", "role", "is_owner")}),
    )
    list_display = ["id", "username", "email", "department", "role", "is_owner"]
    search_fields = ["username", "email", "name", "department"]
    list_filter = ["role", "is_owner", "is_active"]
