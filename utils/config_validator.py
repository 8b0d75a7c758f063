"""
Configuration validation for the compliance email workflow
Reports which environment variables are missing before dispatch is attempted
"""
import os
import logging
from typing import Dict, List, Tuple, Any

logger = logging.getLogger(__name__)

DEFAULT_SMTP_PORT = 587
IMPLICIT_TLS_PORT = 465


class ConfigValidationError(Exception):
    """Raised when critical configuration is missing or invalid"""
    pass


def load_smtp_settings() -> Dict[str, Any]:
    """
    Read SMTP settings from the environment.

    SMTP_FROM falls back to SMTP_USER; SMTP_PORT defaults to 587.
    Port 465 means implicit TLS, anything else uses STARTTLS.
    """
    user = (os.getenv('SMTP_USER') or '').strip()
    raw_port = (os.getenv('SMTP_PORT') or '').strip()
    try:
        port = int(raw_port) if raw_port else DEFAULT_SMTP_PORT
    except ValueError:
        raise ConfigValidationError(f"SMTP_PORT must be an integer, got {raw_port!r}")

    return {
        'host': (os.getenv('SMTP_HOST') or '').strip(),
        'port': port,
        'user': user,
        'password': os.getenv('SMTP_PASS') or '',
        'from_address': (os.getenv('SMTP_FROM') or '').strip() or user,
        'implicit_tls': port == IMPLICIT_TLS_PORT,
    }


def validate_smtp_config() -> Tuple[bool, List[str]]:
    """
    Validate SMTP configuration for compliance email dispatch.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    required_vars = {
        'SMTP_HOST': 'SMTP host',
        'SMTP_USER': 'SMTP username',
        'SMTP_PASS': 'SMTP password',
    }

    for var_name, description in required_vars.items():
        value = os.getenv(var_name)
        if not value or not value.strip():
            issues.append(f"Missing {description} ({var_name})")

    if not (os.getenv('SMTP_FROM') or os.getenv('SMTP_USER') or '').strip():
        issues.append("Missing sender address (SMTP_FROM or SMTP_USER)")

    try:
        load_smtp_settings()
    except ConfigValidationError as e:
        issues.append(str(e))

    return len(issues) == 0, issues


def validate_flask_config() -> Tuple[bool, List[str]]:
    """
    Validate Flask configuration for production.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    session_secret = os.getenv('SESSION_SECRET')
    if not session_secret:
        issues.append("Missing SESSION_SECRET environment variable")
    elif len(session_secret) < 32:
        issues.append("SESSION_SECRET should be at least 32 characters for security")

    if os.getenv('FLASK_ENV') == 'development':
        issues.append("FLASK_ENV=development exposes email content in API responses")

    if not (os.getenv('NEXT_PUBLIC_APP_URL') or os.getenv('SITE_URL')):
        issues.append("Neither NEXT_PUBLIC_APP_URL nor SITE_URL is set; links fall back to the request origin")

    return len(issues) == 0, issues


def get_smtp_config_status() -> str:
    """Short status string for startup logging"""
    is_valid, issues = validate_smtp_config()
    if is_valid:
        return "configured"
    return f"not configured ({'; '.join(issues)})"


def check_production_readiness() -> Dict[str, Any]:
    """
    Comprehensive check of production readiness.

    Returns:
        dict: Status information including issues
    """
    smtp_valid, smtp_issues = validate_smtp_config()
    flask_valid, flask_issues = validate_flask_config()

    status = {
        'ready': smtp_valid and flask_valid,
        'smtp': {'valid': smtp_valid, 'issues': smtp_issues},
        'flask': {'valid': flask_valid, 'issues': flask_issues},
    }

    if not status['ready']:
        logger.warning(f"Production readiness issues: {smtp_issues + flask_issues}")

    return status
