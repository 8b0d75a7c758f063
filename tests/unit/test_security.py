"""
Unit tests for audit and error message redaction
"""

import pytest

from utils.security import AuditDataSanitizer


class TestMaskEmail:

    @pytest.mark.parametrize('email, masked', [
        ('dana.driver@staff.test', 'd*********r@staff.test'),
        ('ab@staff.test', '**@staff.test'),
        ('', ''),
        ('not-an-email', 'not-an-email'),
    ])
    def test_mask(self, email, masked):
        assert AuditDataSanitizer.mask_email(email) == masked


def test_link_tokens_redacted():
    text = 'Upload Link: https://example.test/upload-document/Ab-12_x9 then https://example.test/book-appointment/Zz9'

    assert AuditDataSanitizer.redact_links(text) == (
        'Upload Link: https://example.test/upload-document/[REDACTED] '
        'then https://example.test/book-appointment/[REDACTED]'
    )


def test_json_details_sanitized_recursively():
    details = {
        'recipient': 'dana@staff.test',
        'email_token': 'secret-token',
        'nested': {'smtp_pass': 'hunter2', 'files': ['a.pdf', 'owner bob@staff.test']},
        'count': 2,
    }

    assert AuditDataSanitizer.sanitize_json_data(details) == {
        'recipient': 'd**a@staff.test',
        'email_token': '[REDACTED]',
        'nested': {'smtp_pass': '[REDACTED]', 'files': ['a.pdf', 'owner b*b@staff.test']},
        'count': 2,
    }


@pytest.mark.parametrize('data', [None, '', 'not json', '[1, 2]'])
def test_non_object_details_become_empty(data):
    assert AuditDataSanitizer.sanitize_json_data(data) == {}


def test_error_message_drops_connection_urls():
    message = 'could not connect to postgresql://fleet:pw@db.internal/fleet (password=pw)'

    sanitized = AuditDataSanitizer.sanitize_error_message(message)

    assert 'pw@' not in sanitized
    assert 'password=pw' not in sanitized
    assert sanitized.count('[REDACTED]') == 2
