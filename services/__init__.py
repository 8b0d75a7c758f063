"""
Service Layer Architecture

This package contains the business logic of the compliance workflow, kept
out of the route handlers. Services provide:

1. **Transaction Management**: Atomic operations with proper rollback
2. **Business Logic Separation**: Route handlers only parse and serialize
3. **Testability**: Business logic is unit tested without HTTP
4. **Error Handling**: Services raise the errors in errors.py; the app renders them

Services Architecture:
- **CertificateService**: Expiry detection, notification creation, work gates
- **NotificationService**: Notification lookup, status changes, recipients
- **EmailDispatchService**: Email composition, dispatch and post-send hold
- **EmailService**: SMTP transport
- **HoldService**: Hold propagation across entities, routes and vehicles
- **ComplianceCaseService**: Remediation tracking and case notes
- **SelfService**: Token-keyed document upload and appointment booking
- **FileService**: Upload storage
- **UserDirectory**: Acting-user resolution
- **AuditService**: Centralized audit logging
"""

from .certificate_service import CertificateService
from .notification_service import NotificationService
from .email_dispatch_service import EmailDispatchService
from .email_service import EmailService
from .hold_service import HoldService
from .compliance_case_service import ComplianceCaseService
from .self_service import SelfService
from .file_service import FileService
from .user_directory import UserDirectory
from .audit_service import AuditService
from .transaction_helper import TransactionHelper

__all__ = [
    'CertificateService',
    'NotificationService',
    'EmailDispatchService',
    'EmailService',
    'HoldService',
    'ComplianceCaseService',
    'SelfService',
    'FileService',
    'UserDirectory',
    'AuditService',
    'TransactionHelper'
]
