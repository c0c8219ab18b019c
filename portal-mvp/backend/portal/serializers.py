"""
Response serializers — ORM 对象 → JSON-able dict。

只负责「输出格式化」，不做任何解析或校验；输入校验在 service 层。
"""


def _iso(value):
    return value.isoformat() if value else None


def serialize_identity(identity):
    return {
        'id': identity.id,
        'email': identity.email,
        'first_name': identity.first_name,
        'last_name': identity.last_name,
        'roles': sorted(identity.roles),
    }


def serialize_auth_result(result):
    return {'token': result.token, 'user': serialize_identity(result.identity)}


def serialize_page(page, serialize):
    return {
        'items': [serialize(item) for item in page.items],
        'total': page.total,
        'page': page.page,
        'size': page.size,
        'total_pages': page.total_pages,
    }


def serialize_program(program):
    return {
        'id': program.id,
        'name': program.name,
        'description': program.description,
        'active': program.active,
    }


def serialize_provider(provider):
    return {
        'id': provider.id,
        'npi': provider.npi,
        'name': provider.name,
        'specialty': provider.specialty,
        'city': provider.city,
        'state': provider.state,
        'phone': provider.phone,
        'email': provider.email,
        'active': provider.active,
    }


def serialize_affiliation(affiliation):
    return {
        'id': affiliation.id,
        'user_id': affiliation.user_id,
        'user_email': affiliation.user.email,
        'user_name': affiliation.user.full_name,
        'provider': serialize_provider(affiliation.provider),
        'status': affiliation.status,
        'requested_at': _iso(affiliation.requested_at),
        'verified_at': _iso(affiliation.verified_at),
        'verified_by_email': affiliation.verified_by.email if affiliation.verified_by_id else None,
        'verification_reason': affiliation.verification_reason,
    }


def serialize_patient(patient):
    return {
        'id': patient.id,
        'reference_id': patient.reference_id,
        'first_name': patient.first_name,
        'last_name': patient.last_name,
        'date_of_birth': _iso(patient.date_of_birth),
        'gender': patient.gender,
        'phone': patient.phone,
        'email': patient.email,
        'address_line1': patient.address_line1,
        'address_line2': patient.address_line2,
        'city': patient.city,
        'state': patient.state,
        'zip_code': patient.zip_code,
        'created_by_id': patient.created_by_id,
        'created_at': _iso(patient.created_at),
        'updated_at': _iso(patient.updated_at),
    }


def serialize_enrollment(enrollment):
    return {
        'id': enrollment.id,
        'patient_id': enrollment.patient_id,
        'patient_name': enrollment.patient.full_name,
        'program': serialize_program(enrollment.program),
        'prescriber': serialize_provider(enrollment.prescriber) if enrollment.prescriber_id else None,
        'status': enrollment.status,
        'diagnosis_code': enrollment.diagnosis_code,
        'diagnosis_description': enrollment.diagnosis_description,
        'medication_name': enrollment.medication_name,
        'notes': enrollment.notes,
        'created_by_id': enrollment.created_by_id,
        'created_by_email': enrollment.created_by.email,
        'submitted_at': _iso(enrollment.submitted_at),
        'created_at': _iso(enrollment.created_at),
        'updated_at': _iso(enrollment.updated_at),
    }


def serialize_status_history(entry):
    return {
        'from_status': entry.from_status,
        'to_status': entry.to_status,
        'reason': entry.reason,
        'changed_by_id': entry.changed_by_id,
        'changed_at': _iso(entry.changed_at),
    }


def serialize_investigation(investigation, now=None):
    expired = bool(investigation.expires_at and now and investigation.expires_at < now)
    return {
        'id': investigation.id,
        'patient_id': investigation.patient_id,
        'patient_reference_id': investigation.patient.reference_id,
        'patient_name': investigation.patient.full_name,
        'program_id': investigation.program_id,
        'program_name': investigation.program.name,
        'investigation_type': investigation.investigation_type,
        'payer_name': investigation.payer_name,
        'payer_plan_id': investigation.payer_plan_id,
        'member_id': investigation.member_id,
        'patient_state': investigation.patient_state,
        'medication_name': investigation.medication_name,
        'coverage_status': investigation.coverage_status,
        'coverage_type': investigation.coverage_type,
        'prior_auth_required': investigation.prior_auth_required,
        'deductible_applies': investigation.deductible_applies,
        'specialty_pharmacy_required': investigation.specialty_pharmacy_required,
        'notes': investigation.notes,
        'result_payload': investigation.result_payload,
        'expires_at': _iso(investigation.expires_at),
        'expired': expired,
        'created_at': _iso(investigation.created_at),
    }


def serialize_form(form, download_count=None):
    response = {
        'id': form.id,
        'title': form.title,
        'description': form.description,
        'program_id': form.program_id,
        'program_name': form.program.name if form.program_id else None,
        'category': form.category,
        'file_name': form.file_name,
        'file_size': form.file_size,
        'mime_type': form.mime_type,
        'version': form.version,
        'parent_id': form.parent_id,
        'compliance_approved': form.compliance_approved,
        'uploaded_by_id': form.uploaded_by_id,
        'uploaded_at': _iso(form.uploaded_at),
        'updated_at': _iso(form.updated_at),
        'download_url': f'/api/v1/forms/{form.id}/download',
    }
    if download_count is not None:
        response['download_count'] = download_count
    return response


def serialize_attachment(attachment):
    return {
        'id': attachment.id,
        'file_name': attachment.file_name,
        'file_size': attachment.file_size,
        'mime_type': attachment.mime_type,
        'uploaded_at': _iso(attachment.uploaded_at),
        'download_url': f'/api/v1/messages/attachments/{attachment.id}/download',
    }


def serialize_message(message):
    return {
        'id': message.id,
        'thread_id': message.thread_id,
        'content': message.content,
        'sent_by': message.sent_by_id,
        'sent_by_name': message.sent_by.full_name,
        'sent_at': _iso(message.sent_at),
        'read_at': _iso(message.read_at),
        'attachments': [serialize_attachment(a) for a in message.attachments.all()],
    }


def serialize_thread(thread, unread_count=None, messages=None):
    response = {
        'id': thread.id,
        'subject': thread.subject,
        'program_id': thread.program_id,
        'program_name': thread.program.name if thread.program_id else None,
        'patient_id': thread.patient_id,
        'patient_name': thread.patient.full_name if thread.patient_id else None,
        'created_by': thread.created_by_id,
        'created_by_name': thread.created_by.full_name,
        'created_at': _iso(thread.created_at),
        'last_message_at': _iso(thread.last_message_at),
    }
    if unread_count is not None:
        response['unread_count'] = unread_count
    if messages is not None:
        response['messages'] = [serialize_message(m) for m in messages]
    return response


def serialize_audit_event(event):
    return {
        'id': event.id,
        'event_type': event.event_type,
        'user_id': event.user_id,
        'user_email': event.user.email if event.user_id else None,
        'actor': event.actor,
        'resource_type': event.resource_type,
        'resource_id': event.resource_id,
        'action': event.action,
        'correlation_id': event.correlation_id,
        'ip_address': event.ip_address,
        'metadata': event.metadata,
        'created_at': _iso(event.created_at),
    }
