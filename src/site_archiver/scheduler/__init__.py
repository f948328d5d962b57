"""Recurring archive scheduling.

Sub-modules:
- ``cadence``  cron parsing (via Celery's ``crontab``) and next-occurrence evaluation
- ``service``  :class:`SchedulerService` owning the live job registry
"""
