from django.db import models


class User(models.Model):
    email = models.EmailField(max_length=255, unique=True)
    password_hash = models.CharField(max_length=255)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    roles = models.JSONField(default=list)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'


class Program(models.Model):
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True, default='')
    active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'programs'


class Provider(models.Model):
    npi = models.CharField(max_length=10, unique=True)
    name = models.CharField(max_length=200)
    specialty = models.CharField(max_length=100, blank=True, default='')
    city = models.CharField(max_length=100, blank=True, default='')
    state = models.CharField(max_length=2, blank=True, default='')
    phone = models.CharField(max_length=20, blank=True, default='')
    email = models.EmailField(blank=True, default='')
    active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'providers'


class ProviderAffiliation(models.Model):
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('APPROVED', 'Approved'),
        ('REJECTED', 'Rejected'),
    ]

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='affiliations')
    provider = models.ForeignKey(Provider, on_delete=models.CASCADE, related_name='affiliations')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    requested_at = models.DateTimeField(auto_now_add=True)
    verified_at = models.DateTimeField(blank=True, null=True)
    verified_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, blank=True, null=True, related_name='verified_affiliations'
    )
    verification_reason = models.TextField(blank=True, null=True)

    class Meta:
        db_table = 'provider_affiliations'
        constraints = [
            models.UniqueConstraint(fields=['user', 'provider'], name='uniq_user_provider_affiliation'),
        ]


class Patient(models.Model):
    reference_id = models.CharField(max_length=20, unique=True)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    date_of_birth = models.DateField()
    gender = models.CharField(max_length=20, blank=True, default='')
    phone = models.CharField(max_length=20, blank=True, default='')
    email = models.EmailField(blank=True, default='')
    address_line1 = models.CharField(max_length=200, blank=True, default='')
    address_line2 = models.CharField(max_length=200, blank=True, default='')
    city = models.CharField(max_length=100, blank=True, default='')
    state = models.CharField(max_length=2, blank=True, default='')
    zip_code = models.CharField(max_length=10, blank=True, default='')
    created_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='patients')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patients'

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'


class Enrollment(models.Model):
    STATUS_CHOICES = [
        ('DRAFT', 'Draft'),
        ('SUBMITTED', 'Submitted'),
        ('UNDER_REVIEW', 'Under review'),
        ('APPROVED', 'Approved'),
        ('DENIED', 'Denied'),
        ('WITHDRAWN', 'Withdrawn'),
    ]

    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='enrollments')
    program = models.ForeignKey(Program, on_delete=models.PROTECT, related_name='enrollments')
    prescriber = models.ForeignKey(Provider, on_delete=models.SET_NULL, blank=True, null=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='DRAFT')
    diagnosis_code = models.CharField(max_length=20, blank=True, default='')
    diagnosis_description = models.CharField(max_length=255, blank=True, default='')
    medication_name = models.CharField(max_length=200, blank=True, default='')
    notes = models.TextField(blank=True, default='')
    created_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='enrollments')
    submitted_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'enrollments'


class EnrollmentStatusHistory(models.Model):
    enrollment = models.ForeignKey(Enrollment, on_delete=models.CASCADE, related_name='status_history')
    from_status = models.CharField(max_length=20, blank=True, null=True)
    to_status = models.CharField(max_length=20)
    reason = models.TextField(blank=True, default='')
    changed_by = models.ForeignKey(User, on_delete=models.PROTECT)
    changed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'enrollment_status_history'


class BenefitsInvestigation(models.Model):
    TYPE_CHOICES = [
        ('MEDICAL', 'Medical'),
        ('PHARMACY', 'Pharmacy'),
    ]

    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='benefits_investigations')
    program = models.ForeignKey(Program, on_delete=models.PROTECT)
    investigation_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    payer_name = models.CharField(max_length=200, blank=True, default='')
    payer_plan_id = models.CharField(max_length=100, blank=True, default='')
    member_id = models.CharField(max_length=100, blank=True, default='')
    patient_state = models.CharField(max_length=2, blank=True, default='')
    medication_name = models.CharField(max_length=200, blank=True, default='')
    coverage_status = models.CharField(max_length=20)
    coverage_type = models.CharField(max_length=20)
    prior_auth_required = models.BooleanField(default=False)
    deductible_applies = models.BooleanField(default=False)
    specialty_pharmacy_required = models.BooleanField(default=False)
    notes = models.TextField(blank=True, default='')
    result_payload = models.JSONField(default=dict, blank=True)
    expires_at = models.DateTimeField(blank=True, null=True)
    created_by = models.ForeignKey(User, on_delete=models.PROTECT)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'benefits_investigations'


class FormResource(models.Model):
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, default='')
    program = models.ForeignKey(Program, on_delete=models.SET_NULL, blank=True, null=True)
    category = models.CharField(max_length=50, blank=True, default='')
    file_path = models.CharField(max_length=500, unique=True)
    file_name = models.CharField(max_length=255)
    file_size = models.BigIntegerField()
    mime_type = models.CharField(max_length=100)
    version = models.PositiveIntegerField(default=1)
    parent = models.ForeignKey('self', on_delete=models.SET_NULL, blank=True, null=True, related_name='versions')
    compliance_approved = models.BooleanField(default=False)
    uploaded_by = models.ForeignKey(User, on_delete=models.PROTECT)
    uploaded_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'form_resources'


class DownloadAudit(models.Model):
    form_resource = models.ForeignKey(FormResource, on_delete=models.CASCADE, related_name='downloads')
    user = models.ForeignKey(User, on_delete=models.PROTECT)
    patient = models.ForeignKey(Patient, on_delete=models.SET_NULL, blank=True, null=True)
    correlation_id = models.CharField(max_length=64)
    ip_address = models.CharField(max_length=64, blank=True, default='')
    downloaded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'download_audits'


class MessageThread(models.Model):
    subject = models.CharField(max_length=255)
    program = models.ForeignKey(Program, on_delete=models.SET_NULL, blank=True, null=True)
    patient = models.ForeignKey(Patient, on_delete=models.SET_NULL, blank=True, null=True)
    created_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='threads')
    created_at = models.DateTimeField(auto_now_add=True)
    last_message_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        db_table = 'secure_message_threads'


class Message(models.Model):
    thread = models.ForeignKey(MessageThread, on_delete=models.CASCADE, related_name='messages')
    content = models.TextField()
    sent_by = models.ForeignKey(User, on_delete=models.PROTECT)
    sent_at = models.DateTimeField(auto_now_add=True)
    read_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        db_table = 'secure_messages'
        ordering = ['sent_at', 'id']


class MessageAttachment(models.Model):
    message = models.ForeignKey(
        Message, on_delete=models.CASCADE, blank=True, null=True, related_name='attachments'
    )
    file_path = models.CharField(max_length=500)
    file_name = models.CharField(max_length=255)
    file_size = models.BigIntegerField()
    mime_type = models.CharField(max_length=100)
    uploaded_by = models.ForeignKey(User, on_delete=models.PROTECT)
    uploaded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'message_attachments'


class AuditEvent(models.Model):
    """
    Append-only 审计记录。

    应用代码只会 create，不会 update / delete；save() 已存在的行或 delete() 都直接报错。
    user 为 None 表示 "system"（没有已认证的操作者）。
    """

    event_type = models.CharField(max_length=100)
    user = models.ForeignKey(User, on_delete=models.SET_NULL, blank=True, null=True)
    resource_type = models.CharField(max_length=50)
    resource_id = models.CharField(max_length=64, blank=True, null=True)
    action = models.CharField(max_length=50)
    correlation_id = models.CharField(max_length=64)
    ip_address = models.CharField(max_length=64, blank=True, default='')
    metadata = models.JSONField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'audit_events'

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise RuntimeError('Audit events are append-only')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise RuntimeError('Audit events are append-only')

    @property
    def actor(self):
        return str(self.user_id) if self.user_id else 'system'
