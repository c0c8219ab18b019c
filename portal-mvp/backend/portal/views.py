"""
HTTP 边界：DRF APIView，只做参数提取 → 调 service → 序列化。

认证由 JwtAuthentication 完成，角色检查用 HasRole；
所有异常都交给 exception_handler 统一格式化，这里不 try/except。
"""

import io
import logging
from datetime import datetime, timezone as dt_timezone

from django.http import FileResponse
from django.utils import timezone
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from . import audit, serializers
from .auth import get_auth_provider
from .authentication import HasRole
from .context import RequestContext
from .exceptions import Unauthorized, ValidationFailure
from .services import affiliations, benefits, catalog, enrollments, forms, messages, patients
from .validation import text_field

logger = logging.getLogger(__name__)

OFFICE_STAFF = 'OFFICE_STAFF'
SUPPORT_AGENT = 'SUPPORT_AGENT'
ADMIN = 'ADMIN'
ANY_ROLE = (OFFICE_STAFF, SUPPORT_AGENT, ADMIN)


def _int_param(request, name, default=None):
    value = request.query_params.get(name)
    if value in (None, ''):
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationFailure(f'{name} must be an integer', code='INVALID_PARAMETER', detail={'param': name})


def _datetime_param(request, name):
    value = request.query_params.get(name)
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise ValidationFailure(f'{name} must be an ISO-8601 datetime', code='INVALID_PARAMETER',
                                detail={'param': name})
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


def _body(request):
    """JSON body 必须是 object；数组 / 标量直接 400。"""
    if not hasattr(request.data, 'get'):
        raise ValidationFailure('Request body must be a JSON object', code='INVALID_BODY')
    return request.data


def _page_params(request):
    return _int_param(request, 'page', 0), _int_param(request, 'size', audit.DEFAULT_PAGE_SIZE)


# ── Auth ───────────────────────────────────────────────────────────────────

class LoginView(APIView):
    """POST /api/v1/auth/login"""

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        data = _body(request)
        email = text_field(data, 'email') or ''
        logger.info('Login attempt for email: %s', email)

        result = get_auth_provider().login(email, text_field(data, 'password', strip=False) or '')
        return Response(serializers.serialize_auth_result(result))


class RegisterView(APIView):
    """POST /api/v1/auth/register"""

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        data = _body(request)
        identity = get_auth_provider().register_user(
            text_field(data, 'email') or '',
            text_field(data, 'password', strip=False) or '',
            text_field(data, 'first_name') or '',
            text_field(data, 'last_name') or '',
        )
        return Response(serializers.serialize_identity(identity), status=status.HTTP_201_CREATED)


class MeView(APIView):
    """GET /api/v1/auth/me"""

    def get(self, request):
        ctx = RequestContext.from_request(request)
        identity = get_auth_provider().get_current_user(ctx)
        if identity is None:
            raise Unauthorized()
        return Response(serializers.serialize_identity(identity))


# ── Catalog ────────────────────────────────────────────────────────────────

class ProgramListView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request):
        return Response([serializers.serialize_program(p) for p in catalog.list_programs()])


class ProgramDetailView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request, program_id):
        return Response(serializers.serialize_program(catalog.get_program(program_id)))


class ProviderListView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request):
        page, size = _page_params(request)
        result = catalog.search_providers(request.query_params.get('search'), page, size)
        return Response(serializers.serialize_page(result, serializers.serialize_provider))


class ProviderDetailView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request, provider_id):
        return Response(serializers.serialize_provider(catalog.get_provider(provider_id)))


# ── Affiliations ───────────────────────────────────────────────────────────

class AffiliationRequestView(APIView):
    """POST /api/v1/providers/associate"""

    permission_classes = [HasRole(OFFICE_STAFF)]

    def post(self, request):
        affiliation = affiliations.request_affiliation(
            RequestContext.from_request(request), _body(request).get('provider_id'),
        )
        return Response(serializers.serialize_affiliation(affiliation), status=status.HTTP_201_CREATED)


class MyAffiliationsView(APIView):
    permission_classes = [HasRole(OFFICE_STAFF, SUPPORT_AGENT)]

    def get(self, request):
        items = affiliations.get_user_affiliations(RequestContext.from_request(request))
        return Response([serializers.serialize_affiliation(a) for a in items])


class PendingAffiliationsView(APIView):
    permission_classes = [HasRole(ADMIN)]

    def get(self, request):
        items = affiliations.get_pending_affiliations(RequestContext.from_request(request))
        return Response([serializers.serialize_affiliation(a) for a in items])


class VerifyAffiliationView(APIView):
    permission_classes = [HasRole(ADMIN)]

    def post(self, request, affiliation_id):
        data = _body(request)
        approved = data.get('approved')
        if not isinstance(approved, bool):
            raise ValidationFailure('approved must be true or false', code='MISSING_FIELDS',
                                    detail={'fields': ['approved']})
        affiliation = affiliations.verify_affiliation(
            RequestContext.from_request(request), affiliation_id, approved, data.get('reason'),
        )
        return Response(serializers.serialize_affiliation(affiliation))


# ── Patients ───────────────────────────────────────────────────────────────

class PatientListCreateView(APIView):

    def get_permissions(self):
        if self.request.method == 'POST':
            return [HasRole(OFFICE_STAFF)()]
        return [HasRole(*ANY_ROLE)()]

    def get(self, request):
        page, size = _page_params(request)
        result = patients.search_patients(
            RequestContext.from_request(request), request.query_params.get('search'), page, size,
        )
        return Response(serializers.serialize_page(result, serializers.serialize_patient))

    def post(self, request):
        patient = patients.create_patient(RequestContext.from_request(request), _body(request))
        return Response(serializers.serialize_patient(patient), status=status.HTTP_201_CREATED)


class PatientDetailView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request, patient_id):
        patient = patients.get_patient(RequestContext.from_request(request), patient_id)
        return Response(serializers.serialize_patient(patient))


# ── Enrollments ────────────────────────────────────────────────────────────

class PatientEnrollmentsView(APIView):

    def get_permissions(self):
        if self.request.method == 'POST':
            return [HasRole(OFFICE_STAFF, SUPPORT_AGENT)()]
        return [HasRole(*ANY_ROLE)()]

    def get(self, request, patient_id):
        items = enrollments.get_patient_enrollments(RequestContext.from_request(request), patient_id)
        return Response([serializers.serialize_enrollment(e) for e in items])

    def post(self, request, patient_id):
        enrollment = enrollments.create_or_update_enrollment(
            RequestContext.from_request(request), patient_id, _body(request),
        )
        return Response(serializers.serialize_enrollment(enrollment), status=status.HTTP_201_CREATED)


class EnrollmentDetailView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request, enrollment_id):
        ctx = RequestContext.from_request(request)
        enrollment = enrollments.get_enrollment(ctx, enrollment_id)
        response = serializers.serialize_enrollment(enrollment)
        response['status_history'] = [
            serializers.serialize_status_history(h) for h in enrollments.get_status_history(ctx, enrollment_id)
        ]
        return Response(response)


class EnrollmentStatusView(APIView):
    """PATCH /api/v1/enrollments/<id>/status"""

    permission_classes = [HasRole(SUPPORT_AGENT, ADMIN)]

    def patch(self, request, enrollment_id):
        data = _body(request)
        new_status = data.get('status') or request.query_params.get('status')
        reason = data.get('reason') or request.query_params.get('reason')
        enrollment = enrollments.update_enrollment_status(
            RequestContext.from_request(request), enrollment_id, new_status, reason,
        )
        return Response(serializers.serialize_enrollment(enrollment))


# ── Benefits investigation ─────────────────────────────────────────────────

class PatientInvestigationsView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request, patient_id):
        items = benefits.get_patient_investigations(RequestContext.from_request(request), patient_id)
        now = timezone.now()
        return Response([serializers.serialize_investigation(i, now) for i in items])

    def post(self, request, patient_id):
        investigation = benefits.run_investigation(RequestContext.from_request(request), patient_id, _body(request))
        return Response(
            serializers.serialize_investigation(investigation, timezone.now()),
            status=status.HTTP_201_CREATED,
        )


class LatestInvestigationView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request, patient_id):
        investigation = benefits.get_latest_investigation(
            RequestContext.from_request(request), patient_id, request.query_params.get('investigation_type'),
        )
        return Response(serializers.serialize_investigation(investigation, timezone.now()))


class InvestigationDetailView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request, investigation_id):
        investigation = benefits.get_investigation(RequestContext.from_request(request), investigation_id)
        return Response(serializers.serialize_investigation(investigation, timezone.now()))


class BenefitsHealthView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request):
        return Response({'available': benefits.benefits_service_available()})


# ── Forms ──────────────────────────────────────────────────────────────────

class FormListView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request):
        page, size = _page_params(request)
        result = forms.search_forms(
            program_id=_int_param(request, 'program_id'),
            category=request.query_params.get('category'),
            search=request.query_params.get('search'),
            page=page,
            size=size,
        )
        return Response(serializers.serialize_page(result, serializers.serialize_form))


class FormUploadView(APIView):
    """POST /api/v1/admin/forms (multipart: file + 元数据字段)"""

    permission_classes = [HasRole(ADMIN)]

    def post(self, request):
        body = _body(request)
        data = {
            'title': body.get('title'),
            'description': body.get('description'),
            'program_id': body.get('program_id'),
            'category': body.get('category'),
            'parent_id': body.get('parent_id'),
            'compliance_approved': str(body.get('compliance_approved', '')).lower() in ('1', 'true', 'yes'),
        }
        form = forms.upload_form(RequestContext.from_request(request), data, request.FILES.get('file'))
        return Response(serializers.serialize_form(form, 0), status=status.HTTP_201_CREATED)


class FormAdminDetailView(APIView):
    permission_classes = [HasRole(ADMIN)]

    def delete(self, request, form_id):
        forms.delete_form(RequestContext.from_request(request), form_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class FormDetailView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request, form_id):
        form = forms.get_form(form_id)
        return Response(serializers.serialize_form(form, forms.download_count(form)))


class FormVersionsView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request, form_id):
        return Response([serializers.serialize_form(f) for f in forms.get_form_versions(form_id)])


class FormDownloadView(APIView):
    """GET /api/v1/forms/<id>/download 和 /view（inline）"""

    permission_classes = [HasRole(*ANY_ROLE)]
    inline = False

    def get(self, request, form_id):
        form, stream = forms.download_form(
            RequestContext.from_request(request), form_id, _int_param(request, 'patient_id'),
        )
        return FileResponse(
            stream,
            as_attachment=not self.inline,
            filename=form.file_name,
            content_type=form.mime_type,
        )


class FormPresignedUrlView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request, form_id):
        expiry = _int_param(request, 'expiry', forms.DEFAULT_PRESIGNED_EXPIRY)
        return Response({'url': forms.get_form_presigned_url(form_id, expiry), 'expires_in': expiry})


# ── Secure messages ────────────────────────────────────────────────────────

class ThreadListCreateView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request):
        ctx = RequestContext.from_request(request)
        page, size = _page_params(request)
        result = messages.get_threads(ctx, page, size)
        user_id = ctx.user.id
        return Response(serializers.serialize_page(
            result, lambda t: serializers.serialize_thread(t, messages.unread_count(t, user_id)),
        ))

    def post(self, request):
        data = _body(request)
        thread = messages.create_thread(
            RequestContext.from_request(request),
            data.get('subject'),
            program_id=data.get('program_id'),
            patient_id=data.get('patient_id'),
        )
        return Response(serializers.serialize_thread(thread, 0), status=status.HTTP_201_CREATED)


class ThreadDetailView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request, thread_id):
        ctx = RequestContext.from_request(request)
        thread, items = messages.get_thread(ctx, thread_id)
        return Response(serializers.serialize_thread(thread, messages.unread_count(thread, ctx.user.id), items))


class ThreadMessagesView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def post(self, request, thread_id):
        data = _body(request)
        message = messages.send_message(
            RequestContext.from_request(request),
            thread_id,
            data.get('content'),
            data.get('attachment_ids'),
        )
        return Response(serializers.serialize_message(message), status=status.HTTP_201_CREATED)


class AttachmentUploadView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def post(self, request):
        attachment = messages.upload_attachment(RequestContext.from_request(request), request.FILES.get('file'))
        return Response(serializers.serialize_attachment(attachment), status=status.HTTP_201_CREATED)


class AttachmentDownloadView(APIView):
    permission_classes = [HasRole(*ANY_ROLE)]

    def get(self, request, attachment_id):
        attachment, content = messages.download_attachment(RequestContext.from_request(request), attachment_id)
        return FileResponse(
            io.BytesIO(content),
            as_attachment=True,
            filename=attachment.file_name,
            content_type=attachment.mime_type,
        )


# ── Admin: audit ───────────────────────────────────────────────────────────

class AuditEventListView(APIView):
    permission_classes = [HasRole(ADMIN)]

    def get(self, request):
        page, size = _page_params(request)
        result = audit.get_audit_events(
            event_type=request.query_params.get('event_type'),
            user_id=_int_param(request, 'user_id'),
            action=request.query_params.get('action'),
            correlation_id=request.query_params.get('correlation_id'),
            start=_datetime_param(request, 'start'),
            end=_datetime_param(request, 'end'),
            page=page,
            size=size,
        )
        return Response(serializers.serialize_page(result, serializers.serialize_audit_event))
