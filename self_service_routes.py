"""
Public routes behind the links in compliance emails. No login: the email
token in the URL is the credential.
"""

from flask import Blueprint, request, jsonify
import logging

from compliance_routes import serialize_slot, serialize_booking
from services.self_service import SelfService

self_service_bp = Blueprint('self_service', __name__)

logger = logging.getLogger(__name__)


@self_service_bp.route('/upload-document/<token>', methods=['GET'])
def upload_document_context(token):
    return jsonify(SelfService().get_token_context(token))

@self_service_bp.route('/upload-document/<token>', methods=['POST'])
def upload_document(token):
    """Multipart upload; files under 'files' (or a single 'file'), optional 'name'"""
    files = request.files.getlist('files') or request.files.getlist('file')
    submissions = SelfService().submit_documents(token, files, request.form.get('name'))
    return jsonify({
        'success': True,
        'files': [submission.original_filename for submission in submissions],
    }), 201

@self_service_bp.route('/book-appointment/<token>', methods=['GET'])
def book_appointment_context(token):
    service = SelfService()
    context = service.get_token_context(token)
    context['slots'] = [serialize_slot(slot, include_booking=False) for slot in service.list_open_slots()]
    return jsonify(context)

@self_service_bp.route('/book-appointment/<token>', methods=['POST'])
def book_appointment(token):
    data = request.get_json(silent=True) or {}
    booking = SelfService().book_appointment(
        token,
        data.get('slotId'),
        name=data.get('name'),
        email=data.get('email'),
    )
    return jsonify({'success': True, 'booking': serialize_booking(booking)}), 201
