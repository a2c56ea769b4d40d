from django.contrib import admin

from hr_leave.notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ["created_at", "recipient", "event", "leave_request", "level", "read_at"]
    list_filter = ["event"]
    search_fields = ["recipient__username", "title"]
    raw_id_fields = ["recipient", "leave_request"]
