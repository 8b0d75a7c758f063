"""
Audit Service

Centralized audit logging for compliance actions: holds applied or
cleared, emails dispatched, notifications dismissed or resolved, cases
updated. Entries join the caller's transaction.
"""

from typing import Optional, Dict, Any
import logging
import json
from flask import request, has_request_context
from models import db, AuditLog
from utils.security import AuditDataSanitizer

logger = logging.getLogger(__name__)

class AuditService:
    """Service class for centralized audit logging"""

    @staticmethod
    def log_action(action: str,
                   table_name: Optional[str] = None,
                   record_id: Optional[int] = None,
                   details: Optional[Dict[str, Any]] = None,
                   user_id: Optional[int] = None) -> AuditLog:
        """
        Add an audit entry to the current session.

        Args:
            action: Action performed (e.g., 'apply_hold', 'send_compliance_email')
            table_name: Table of the affected record (e.g., 'vehicles', 'drivers')
            record_id: Primary key of the affected record
            details: Additional details, sanitized before storage
            user_id: Internal id of the acting user, None for system actions

        Returns:
            The pending AuditLog row
        """
        audit = AuditLog()
        audit.user_id = user_id
        audit.action = action
        audit.table_name = table_name
        audit.record_id = record_id
        audit.new_values = json.dumps(AuditDataSanitizer.sanitize_json_data(details), default=str) if details else None

        if has_request_context():
            audit.ip_address = request.remote_addr
            audit.user_agent = request.headers.get('User-Agent', '')[:500]

        db.session.add(audit)

        # Let outer transaction handle the commit
        logger.debug(f"Audit logged: {action} on {table_name}:{record_id} by user {user_id}")
        return audit
