from django.conf import settings
from django.urls import include
from django.urls import path
from rest_framework.routers import DefaultRouter
from rest_framework.routers import SimpleRouter

from hr_leave.notifications.api.views import NotificationViewSet

router = DefaultRouter() if settings.DEBUG else SimpleRouter()

router.register("notifications", NotificationViewSet, basename="notifications")


app_name = "api"
urlpatterns = [
    path(
        "audit/",
        include(("hr_leave.audit.api.urls", "audit"), namespace="audit"),
    ),
    path("leaves/", include("hr_leave.leaves.api.urls")),
    *router.urls,
]
