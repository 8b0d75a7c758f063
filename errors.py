"""
Error taxonomy for the compliance workflow.

Services raise these; the error handler registered in app.py turns them
into JSON responses of the form {"error": message} with the matching
HTTP status code.
"""


class ComplianceError(Exception):
    """Base class for errors surfaced to API callers"""
    status_code = 500

    def __init__(self, message: str = 'Internal server error'):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'error': self.message}


class AuthError(ComplianceError):
    """No authenticated caller"""
    status_code = 401

    def __init__(self, message: str = 'Unauthorized'):
        super().__init__(message)


class NotFoundError(ComplianceError):
    """Referenced notification, case, slot or entity does not exist"""
    status_code = 404


class ValidationError(ComplianceError):
    """Missing required field or invalid enum value"""
    status_code = 400


class ConflictError(ComplianceError):
    status_code = 409


class PersistenceError(ComplianceError):
    """Underlying database operation failed"""
    status_code = 500


class EmailDeliveryError(ComplianceError):
    """SMTP transport was configured but the send failed"""
    status_code = 500
