from django.contrib import admin

from hr_leave.rbac import models


class RolePermissionInline(admin.TabularInline):
    model = models.RolePermission
    extra = 0


@admin.register(models.Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "display_name", "is_system_role"]
    search_fields = ["name", "display_name"]
    list_filter = ["is_system_role"]
    inlines = [RolePermissionInline]


@admin.register(models.Permission)
class PermissionAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "category"]
    search_fields = ["name", "description"]
    list_filter = ["category"]


@admin.register(models.UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ["id", "user", "role"]
    list_filter = ["role"]
    raw_id_fields = ["user"]
