"""
Unit tests for compliance case tracking
"""

import pytest
from datetime import date, datetime, timedelta

from models import ComplianceCase, ComplianceCaseUpdate, ApplicationStatus
from services import compliance_case_service as case_module
from services.compliance_case_service import ComplianceCaseService, parse_iso_date
from errors import NotFoundError, ValidationError
from tests.conftest import NotificationFactory


@pytest.fixture
def case(db_session):
    notification = NotificationFactory()
    case, _ = ComplianceCaseService().open_case(notification.id)
    return case


class TestParseIsoDate:

    def test_plain_date(self):
        assert parse_iso_date('2025-03-01', 'date_applied') == date(2025, 3, 1)

    def test_time_part_ignored(self):
        assert parse_iso_date('2025-03-01T10:15:00Z', 'date_applied') == date(2025, 3, 1)

    @pytest.mark.parametrize('value', [None, '', '   '])
    def test_blank_is_none(self, value):
        assert parse_iso_date(value, 'date_applied') is None

    def test_invalid(self):
        with pytest.raises(ValidationError, match='date_applied'):
            parse_iso_date('01/03/2025', 'date_applied')


class TestOpenCase:

    def test_creates_case_once(self, db_session):
        notification = NotificationFactory()
        service = ComplianceCaseService()

        case, existing = service.open_case(notification.id)
        again, existing_again = service.open_case(notification.id)

        assert existing is False
        assert existing_again is True
        assert again.id == case.id
        assert case.application_status == ApplicationStatus.NOT_APPLIED
        assert ComplianceCase.query.count() == 1

    def test_unknown_notification(self, db_session):
        with pytest.raises(NotFoundError):
            ComplianceCaseService().open_case(9999)


class TestUpdateTracking:

    def test_records_application(self, db_session, case, monkeypatch):
        later = case.updated_at + timedelta(minutes=5)
        monkeypatch.setattr(case_module, 'get_local_time_naive', lambda: later)

        updated = ComplianceCaseService().update_tracking(case.id, 'applied', '2025-03-01', None)

        assert updated.application_status == ApplicationStatus.APPLIED
        assert updated.date_applied == date(2025, 3, 1)
        assert updated.appointment_date is None
        assert updated.updated_at == later

    def test_overwrites_previous_values(self, db_session, case):
        service = ComplianceCaseService()
        service.update_tracking(case.id, 'applied', '2025-03-01', '2025-03-10')

        updated = service.update_tracking(case.id, 'not_applied', None, None)

        assert updated.application_status == ApplicationStatus.NOT_APPLIED
        assert updated.date_applied is None
        assert updated.appointment_date is None

    def test_invalid_status(self, db_session, case):
        with pytest.raises(ValidationError):
            ComplianceCaseService().update_tracking(case.id, 'pending')

    def test_invalid_date_leaves_case_unchanged(self, db_session, case):
        with pytest.raises(ValidationError):
            ComplianceCaseService().update_tracking(case.id, 'applied', 'yesterday')

        assert db_session.get(ComplianceCase, case.id).application_status == ApplicationStatus.NOT_APPLIED

    def test_unknown_case(self, db_session):
        with pytest.raises(NotFoundError):
            ComplianceCaseService().update_tracking(9999, 'applied')


class TestAddUpdate:

    def test_note_stored_trimmed(self, db_session, case):
        update = ComplianceCaseService().add_update(case.id, '  Called driver, renewal booked  ')

        assert update.notes == 'Called driver, renewal booked'
        assert update.update_type == 'note'

    @pytest.mark.parametrize('notes', ['', '   ', None])
    def test_blank_note_rejected(self, db_session, case, notes):
        with pytest.raises(ValidationError, match='Note text is required'):
            ComplianceCaseService().add_update(case.id, notes)

        assert ComplianceCaseUpdate.query.count() == 0

    def test_updates_listed_newest_first(self, db_session, case):
        service = ComplianceCaseService()
        first = service.add_update(case.id, 'first')
        second = service.add_update(case.id, 'second')
        first.created_at = datetime(2025, 3, 1, 9, 0)
        second.created_at = datetime(2025, 3, 1, 10, 0)
        db_session.commit()

        assert [u.notes for u in service.get_updates(case.id)] == ['second', 'first']

    def test_unknown_case(self, db_session):
        with pytest.raises(NotFoundError):
            ComplianceCaseService().add_update(9999, 'note')
