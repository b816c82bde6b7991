"""
Background Tasks
Celery app and periodic jobs.
"""
