"""Shared Flask extensions for the application."""
from __future__ import annotations

from celery import Celery, Task
from flask import Flask
from flask_sqlalchemy import SQLAlchemy

# SQLAlchemy database instance shared across the app.
db = SQLAlchemy()


def celery_init_app(app: Flask) -> Celery:
    """Create the Celery app bound to ``app``; every task runs inside its app context."""

    class FlaskTask(Task):
        def __call__(self, *args: object, **kwargs: object) -> object:
            with app.app_context():
                return self.run(*args, **kwargs)

    celery_app = Celery(app.name, task_cls=FlaskTask)
    celery_app.config_from_object(app.config["CELERY"])
    celery_app.conf.beat_schedule = {
        "sweep-expired-checkouts": {
            "task": "petcare.sweep_expired_checkouts",
            "schedule": float(app.config["SWEEP_INTERVAL_SECONDS"]),
            "options": {"expires": max(1, app.config["SWEEP_INTERVAL_SECONDS"] - 10)},
        },
    }
    celery_app.set_default()
    app.extensions["celery"] = celery_app
    return celery_app
