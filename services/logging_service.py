"""
Structured log lines for compliance operations.

Holds, scans and email dispatch each log one line with the affected entity
and acting user attached as `extra` fields, so JSON output can be filtered
by entity or notification.
"""

import logging
from typing import Dict, Any, Optional
from utils.logging_config import get_logger


class LoggingService:
    """Business and email event logging"""

    def __init__(self):
        self.logger = get_logger('services')
        self.email_logger = get_logger('email')

    def log_business_operation(self, operation: str, entity_type: str, entity_id: Optional[Any] = None,
                               user_id: Optional[int] = None, details: Optional[Dict[str, Any]] = None,
                               level: int = logging.INFO):
        """
        Args:
            operation: e.g. 'apply_hold', 'clear_hold', 'refresh_notifications'
            entity_type: 'vehicle', 'driver', 'assistant' or 'notification'
            entity_id: Affected entity, if any
            user_id: Acting user, None for unattributed or scheduled runs
            details: Counts and other small values
            level: Logging level
        """
        target = entity_type if entity_id is None else f"{entity_type} {entity_id}"
        actor = f"user {user_id}" if user_id is not None else 'system'
        self.logger.log(
            level,
            f"{operation} on {target} by {actor}",
            extra={
                'operation': operation,
                'entity_type': entity_type,
                'entity_id': entity_id,
                'user_id': user_id,
                'details': details or {},
            }
        )

    def log_email_event(self, event: str, notification_id: int, recipient: Optional[str] = None,
                        details: Optional[Dict[str, Any]] = None, level: int = logging.INFO):
        """Email outcome for a notification: 'smtp', 'skipped' or 'failed'. Pass a masked recipient."""
        self.email_logger.log(
            level,
            f"Compliance email {event} for notification {notification_id}",
            extra={
                'email_event': event,
                'notification_id': notification_id,
                'recipient': recipient,
                'details': details or {},
            }
        )
