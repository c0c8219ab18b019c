from django.urls import path

from . import views

urlpatterns = [
    path('auth/login', views.LoginView.as_view(), name='auth-login'),
    path('auth/register', views.RegisterView.as_view(), name='auth-register'),
    path('auth/me', views.MeView.as_view(), name='auth-me'),

    path('programs', views.ProgramListView.as_view(), name='program-list'),
    path('programs/<int:program_id>', views.ProgramDetailView.as_view(), name='program-detail'),
    path('providers', views.ProviderListView.as_view(), name='provider-list'),
    path('providers/associate', views.AffiliationRequestView.as_view(), name='affiliation-request'),
    path('providers/affiliations', views.MyAffiliationsView.as_view(), name='affiliation-mine'),
    path('providers/<int:provider_id>', views.ProviderDetailView.as_view(), name='provider-detail'),

    path('patients', views.PatientListCreateView.as_view(), name='patient-list'),
    path('patients/<int:patient_id>', views.PatientDetailView.as_view(), name='patient-detail'),
    path('patients/<int:patient_id>/enrollments', views.PatientEnrollmentsView.as_view(),
         name='patient-enrollments'),
    path('patients/<int:patient_id>/benefits-investigation', views.PatientInvestigationsView.as_view(),
         name='patient-investigations'),
    path('patients/<int:patient_id>/benefits-investigation/latest', views.LatestInvestigationView.as_view(),
         name='patient-investigation-latest'),

    path('enrollments/<int:enrollment_id>', views.EnrollmentDetailView.as_view(), name='enrollment-detail'),
    path('enrollments/<int:enrollment_id>/status', views.EnrollmentStatusView.as_view(), name='enrollment-status'),

    path('benefits-investigation/health', views.BenefitsHealthView.as_view(), name='investigation-health'),
    path('benefits-investigation/<int:investigation_id>', views.InvestigationDetailView.as_view(),
         name='investigation-detail'),

    path('forms', views.FormListView.as_view(), name='form-list'),
    path('forms/<int:form_id>', views.FormDetailView.as_view(), name='form-detail'),
    path('forms/<int:form_id>/versions', views.FormVersionsView.as_view(), name='form-versions'),
    path('forms/<int:form_id>/download', views.FormDownloadView.as_view(), name='form-download'),
    path('forms/<int:form_id>/view', views.FormDownloadView.as_view(inline=True), name='form-view'),
    path('forms/<int:form_id>/presigned-url', views.FormPresignedUrlView.as_view(), name='form-presigned-url'),

    path('messages/threads', views.ThreadListCreateView.as_view(), name='thread-list'),
    path('messages/threads/<int:thread_id>', views.ThreadDetailView.as_view(), name='thread-detail'),
    path('messages/threads/<int:thread_id>/messages', views.ThreadMessagesView.as_view(), name='thread-messages'),
    path('messages/attachments', views.AttachmentUploadView.as_view(), name='attachment-upload'),
    path('messages/attachments/<int:attachment_id>/download', views.AttachmentDownloadView.as_view(),
         name='attachment-download'),

    path('admin/providers/affiliations', views.PendingAffiliationsView.as_view(), name='admin-affiliations'),
    path('admin/providers/affiliations/<int:affiliation_id>/verify', views.VerifyAffiliationView.as_view(),
         name='admin-affiliation-verify'),
    path('admin/forms', views.FormUploadView.as_view(), name='admin-form-upload'),
    path('admin/forms/<int:form_id>', views.FormAdminDetailView.as_view(), name='admin-form-detail'),
    path('admin/audit', views.AuditEventListView.as_view(), name='admin-audit'),
]
