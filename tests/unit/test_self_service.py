"""
Unit tests for recipient self-service: document upload and appointment booking
"""

import os
import pytest
from io import BytesIO
from datetime import datetime
from werkzeug.datastructures import FileStorage

from models import AppointmentBooking, DocumentSubmission, SystemActivity, ActivityType
from services.self_service import SelfService, parse_slot_datetime
from services.file_service import FileService
from errors import NotFoundError, ValidationError, ConflictError
from tests.conftest import AppointmentSlotFactory, notification_for


def upload(filename='dbs.pdf', content=b'%PDF-1.4 renewed certificate'):
    return FileStorage(stream=BytesIO(content), filename=filename, content_type='application/pdf')


class TestTokenContext:

    def test_context_for_token(self, db_session, driver):
        notification = notification_for(driver)

        context = SelfService().get_token_context(notification.email_token)

        assert context['notificationId'] == notification.id
        assert context['entityName'] == 'Dana Driver'
        assert context['certificateName'] == 'DBS'
        assert context['requiredDocuments'] == ['DBS Certificate']

    def test_unknown_token(self, db_session):
        with pytest.raises(NotFoundError):
            SelfService().get_token_context('missing')


class TestSubmitDocuments:

    def test_upload_saves_file_and_flags_for_review(self, app, db_session, driver):
        notification = notification_for(driver)

        submissions = SelfService().submit_documents(notification.email_token, [upload()], ' Dana ')

        assert len(submissions) == 1
        stored = DocumentSubmission.query.one()
        assert stored.original_filename == 'dbs.pdf'
        assert stored.uploaded_by_name == 'Dana'
        assert os.path.exists(os.path.join(FileService().upload_folder('compliance'), stored.filename))

        assert notification.admin_response_required is True
        assert notification.employee_response_type == 'document_uploaded'
        assert notification.get_employee_response_details()['files'] == ['dbs.pdf']
        activity = SystemActivity.query.one()
        assert activity.activity_type == ActivityType.DOCUMENT_UPLOAD
        assert activity.entity_name == 'Dana Driver'

    def test_disallowed_file_type(self, db_session, driver):
        notification = notification_for(driver)

        with pytest.raises(ValidationError, match='File type not allowed'):
            SelfService().submit_documents(notification.email_token, [upload(), upload('run.exe')])

        assert DocumentSubmission.query.count() == 0

    def test_no_files(self, db_session, driver):
        notification = notification_for(driver)

        with pytest.raises(ValidationError):
            SelfService().submit_documents(notification.email_token, [])

    def test_unknown_token(self, db_session):
        with pytest.raises(NotFoundError):
            SelfService().submit_documents('missing', [upload()])


class TestSlots:

    def test_create_slot(self, db_session, coordinator):
        slot = SelfService().create_slot('2030-05-01T09:00:00', '2030-05-01T09:30:00', ' Depot ', coordinator.id)

        assert slot.slot_start == datetime(2030, 5, 1, 9, 0)
        assert slot.notes == 'Depot'
        assert slot.created_by == coordinator.id

    def test_end_must_follow_start(self, db_session):
        with pytest.raises(ValidationError):
            SelfService().create_slot('2030-05-01T09:30:00', '2030-05-01T09:00:00')

    def test_missing_start(self, db_session):
        with pytest.raises(ValidationError, match='slotStart is required'):
            SelfService().create_slot(None, '2030-05-01T09:00:00')

    def test_aware_datetime_converted_to_local(self):
        parsed = parse_slot_datetime('2030-01-15T09:00:00Z', 'slotStart')
        assert parsed.tzinfo is None

    def test_open_slots_exclude_booked(self, db_session, driver):
        booked = AppointmentSlotFactory()
        free = AppointmentSlotFactory()
        notification = notification_for(driver)
        SelfService().book_appointment(notification.email_token, booked.id)

        assert [slot.id for slot in SelfService().list_open_slots()] == [free.id]


class TestBookAppointment:

    def test_booking_recorded(self, db_session, driver):
        notification = notification_for(driver)
        slot = AppointmentSlotFactory()

        booking = SelfService().book_appointment(notification.email_token, slot.id, 'Dana', '')

        assert booking.appointment_slot_id == slot.id
        assert booking.booked_by_email == notification.recipient_email
        assert booking.booked_by_name == 'Dana'
        assert notification.admin_response_required is True
        assert notification.employee_response_type == 'appointment_booked'
        details = notification.get_employee_response_details()
        assert details['appointmentDate'] == slot.slot_start.strftime('%d/%m/%Y')
        assert SystemActivity.query.one().activity_type == ActivityType.APPOINTMENT_BOOKING

    def test_slot_cannot_be_booked_twice(self, db_session, driver):
        first = notification_for(driver)
        second = notification_for(driver, certificate_type='tas_badge_expiry_date', certificate_name='TAS Badge')
        slot = AppointmentSlotFactory()
        service = SelfService()
        service.book_appointment(first.email_token, slot.id)

        with pytest.raises(ConflictError, match='Slot already booked'):
            service.book_appointment(second.email_token, slot.id)

        assert AppointmentBooking.query.count() == 1

    def test_invalid_token(self, db_session):
        slot = AppointmentSlotFactory()

        with pytest.raises(ValidationError, match='Invalid token'):
            SelfService().book_appointment('missing', slot.id)

    def test_missing_fields(self, db_session):
        with pytest.raises(ValidationError, match='token and slotId are required'):
            SelfService().book_appointment('abc', None)

    def test_unknown_slot(self, db_session, driver):
        notification = notification_for(driver)

        with pytest.raises(NotFoundError):
            SelfService().book_appointment(notification.email_token, 9999)
