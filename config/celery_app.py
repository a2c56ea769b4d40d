import os

from celery import Celery
from celery.signals import setup_logging

# pytest passes --ds=config.settings.test, which this does not override.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.base")

app = Celery("hr_leave")

# All celery keys in Django settings carry the CELERY_ prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Workers consuming email deliveries run with -Q notifications.
app.conf.task_routes = {
    "notifications.*": {"queue": "notifications"},
}


@setup_logging.connect
def config_loggers(*args, **kwargs):
    from logging.config import dictConfig  # noqa: PLC0415

    from django.conf import settings  # noqa: PLC0415

    dictConfig(settings.LOGGING)


app.autodiscover_tasks(["hr_leave.notifications"])
