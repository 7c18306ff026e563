"""Celery app for incident side effects.

Work that must never block or roll back an incident write (subscriber
notifications) is queued here. Start a worker with:

    celery -A config worker -l info

Broker and result backend come from the CELERY_* Django settings.
"""

from __future__ import annotations

import os

from celery import Celery

from config.env import load_env

load_env()
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("statuspage")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
