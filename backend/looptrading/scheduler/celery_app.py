from celery import Celery

from looptrading.core.config import settings

app = Celery("looptrading")
app.conf.broker_url = settings.CELERY_BROKER_URL
app.conf.result_backend = settings.CELERY_RESULT_BACKEND
app.conf.timezone = settings.CELERY_TIMEZONE
app.conf.enable_utc = True

# Periodic work is driven by the in-process Scheduler; the worker only
# serves manual triggers of the same jobs.
app.conf.include = [
    "looptrading.tasks.market_data",
    "looptrading.tasks.alerts",
]
