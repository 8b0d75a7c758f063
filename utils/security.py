"""
Redaction helpers for audit rows, log lines and error responses.

Recipient emails are masked, self-service link tokens are cut out of any
URL, and SMTP or database credentials never leave the process.
"""
import re
import json
from typing import Dict, Any, Union

SELF_SERVICE_LINK = re.compile(r'(/(?:upload-document|book-appointment)/)[A-Za-z0-9_\-]+')


class AuditDataSanitizer:
    """Sanitizes data written to audit_logs and messages returned to callers"""

    # Keys whose values are dropped entirely
    REDACTED_KEYS = ('password', 'smtp_pass', 'secret', 'email_token', 'token', 'authorization', 'session')

    EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')

    CREDENTIAL_PATTERNS = [
        re.compile(r'(password|pass|secret|token)=\S+', re.IGNORECASE),
        re.compile(r'(postgres(?:ql)?(?:\+\w+)?|sqlite|smtps?)://\S+', re.IGNORECASE),
    ]

    @classmethod
    def mask_email(cls, email: str) -> str:
        """d***r@example.com style masking; short local parts are fully starred"""
        if not email or email.count('@') != 1:
            return email
        local, domain = email.split('@')
        if len(local) <= 2:
            return f"{'*' * len(local)}@{domain}"
        return f"{local[0]}{'*' * (len(local) - 2)}{local[-1]}@{domain}"

    @classmethod
    def redact_links(cls, text: str) -> str:
        """Replace the token of every self-service link with [REDACTED]"""
        return SELF_SERVICE_LINK.sub(r'\1[REDACTED]', text)

    @classmethod
    def sanitize_text(cls, text: str) -> str:
        masked = cls.EMAIL_PATTERN.sub(lambda m: cls.mask_email(m.group()), text)
        return cls.redact_links(masked)

    @classmethod
    def sanitize_json_data(cls, data: Union[str, Dict, None]) -> Dict[str, Any]:
        """
        Sanitize a details dict before it is stored in audit_logs.

        Accepts a dict or a JSON object string. Nested dicts and lists are
        walked; anything that is not a JSON object yields {}.
        """
        if not data:
            return {}
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except json.JSONDecodeError:
                return {}
        if not isinstance(data, dict):
            return {}
        return cls._sanitize_value(data)

    @classmethod
    def _sanitize_value(cls, value):
        if isinstance(value, dict):
            return {
                key: '[REDACTED]' if cls._is_redacted_key(key) else cls._sanitize_value(item)
                for key, item in value.items()
            }
        if isinstance(value, (list, tuple)):
            return [cls._sanitize_value(item) for item in value]
        if isinstance(value, str):
            return cls.sanitize_text(value)
        return value

    @classmethod
    def _is_redacted_key(cls, key) -> bool:
        key = str(key).lower()
        return any(name in key for name in cls.REDACTED_KEYS)

    @classmethod
    def sanitize_error_message(cls, error_msg: str) -> str:
        """Strip credentials, connection URLs, emails and link tokens from an error message"""
        if not error_msg:
            return ''
        sanitized = cls.sanitize_text(error_msg)
        for pattern in cls.CREDENTIAL_PATTERNS:
            sanitized = pattern.sub('[REDACTED]', sanitized)
        return sanitized
