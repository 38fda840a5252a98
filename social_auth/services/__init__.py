"""Services package exports."""

from social_auth.services.logging_service import configure_logging, get_logger
from social_auth.services.notification_dispatcher import NotificationDispatcher
from social_auth.services.task_runner import BackgroundTaskRunner
from social_auth.services.throttle import LoginEmailThrottle

__all__ = [
    "BackgroundTaskRunner",
    "LoginEmailThrottle",
    "NotificationDispatcher",
    "configure_logging",
    "get_logger",
]
