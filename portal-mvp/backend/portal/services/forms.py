import logging

from django.db import transaction
from django.db.models import Max, Q

from .. import audit
from ..context import require_role, require_user
from ..events import publish_safely
from ..events.types import FormUploaded
from ..exceptions import NotFound, StorageFailure, ValidationFailure
from ..models import DownloadAudit, FormResource, Patient, Program, User
from ..storage import get_file_storage
from ..validation import int_field, text_field

logger = logging.getLogger(__name__)

ADMIN_ROLE = 'ADMIN'

ALLOWED_MIME_TYPES = frozenset({
    'application/pdf',
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'application/vnd.ms-excel',
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'image/jpeg',
    'image/png',
})
MAX_FORM_SIZE = 50 * 1024 * 1024  # 50MB

DEFAULT_PRESIGNED_EXPIRY = 3600


def validate_upload(upload, max_size, allowed_types=None):
    """
    上传文件的前置校验：非空 → 类型 → 大小。

    upload 是 Django 的 UploadedFile（或任何带 name / content_type / size 的二进制流）。
    """
    if upload is None or not upload.size:
        raise ValidationFailure('File is empty', code='EMPTY_FILE')

    if allowed_types is not None and upload.content_type not in allowed_types:
        raise ValidationFailure(
            f'File type not allowed: {upload.content_type}',
            code='FILE_TYPE_NOT_ALLOWED',
            detail={'content_type': upload.content_type},
        )

    if upload.size > max_size:
        raise ValidationFailure(
            f'File size exceeds maximum allowed size of {max_size // (1024 * 1024)}MB',
            code='FILE_TOO_LARGE',
            detail={'size': upload.size, 'max_size': max_size},
        )


def upload_form(ctx, data, upload):
    """
    上传表单：先写存储，再写数据库。

    数据库写失败时把刚存进去的对象删掉，避免存储里留下没有记录引用的孤儿文件。
    parent_id 可以指向同一表单的任意版本；新版本总是挂在最早那一版（root）下面，
    版本号 = 整个版本族的最大版本号 + 1。
    """
    identity = require_role(ctx, ADMIN_ROLE)

    title = text_field(data, 'title', required=True)
    description = text_field(data, 'description') or ''
    category = text_field(data, 'category') or ''
    program_id = int_field(data, 'program_id')
    parent_id = int_field(data, 'parent_id')

    validate_upload(upload, MAX_FORM_SIZE, ALLOWED_MIME_TYPES)

    program = None
    if program_id is not None:
        program = Program.objects.filter(id=program_id).first()
        if program is None:
            raise NotFound('Program', program_id)

    root_id = None
    if parent_id is not None:
        parent = FormResource.objects.filter(id=parent_id).first()
        if parent is None:
            raise NotFound('Form', parent_id)
        root_id = parent.parent_id or parent.id

    logger.info('Uploading form: %s (%s)', title, upload.name)

    storage = get_file_storage()
    key = storage.store_file(upload.name, upload.content_type, upload, upload.size)

    try:
        with transaction.atomic():
            root = None
            version = 1
            if root_id is not None:
                root = FormResource.objects.select_for_update().get(id=root_id)
                latest = (
                    FormResource.objects
                    .filter(Q(id=root_id) | Q(parent_id=root_id))
                    .aggregate(latest=Max('version'))['latest']
                )
                version = (latest or 0) + 1

            form = FormResource.objects.create(
                title=title,
                description=description,
                program=program,
                category=category,
                file_path=key,
                file_name=upload.name,
                file_size=upload.size,
                mime_type=upload.content_type,
                version=version,
                parent=root,
                compliance_approved=bool(data.get('compliance_approved', False)),
                uploaded_by=User.objects.get(id=identity.id),
            )
    except Exception:
        logger.error('Failed to persist form %s, removing stored object %s', title, key)
        try:
            storage.delete_file(key)
        except Exception:
            logger.exception('Failed to clean up stored object %s', key)
        raise

    logger.info('Form uploaded successfully with id: %s', form.id)

    audit.log_event(ctx, 'FORM_UPLOADED', 'FORM_RESOURCE', form.id, 'CREATE',
                    metadata={'fileName': form.file_name, 'version': form.version})
    publish_safely(FormUploaded(form_id=form.id, title=form.title, uploaded_by_id=identity.id))
    return form


def search_forms(program_id=None, category=None, search=None, page=0, size=audit.DEFAULT_PAGE_SIZE):
    qs = FormResource.objects.select_related('program', 'uploaded_by')
    if program_id:
        qs = qs.filter(program_id=program_id)
    if category:
        qs = qs.filter(category=category)
    search = (search or '').strip()
    if search:
        qs = qs.filter(Q(title__icontains=search) | Q(description__icontains=search))
    return audit.paginate(qs.order_by('-uploaded_at', '-id'), page, size)


def get_form(form_id):
    form = FormResource.objects.select_related('program', 'uploaded_by').filter(id=form_id).first()
    if form is None:
        raise NotFound('Form', form_id)
    return form


def get_form_versions(form_id):
    """同一个表单的所有版本（含自己），新版本在前。"""
    form = get_form(form_id)
    root_id = form.parent_id or form.id
    return list(
        FormResource.objects
        .filter(Q(id=root_id) | Q(parent_id=root_id))
        .order_by('-version', '-id')
    )


def download_count(form) -> int:
    return DownloadAudit.objects.filter(form_resource=form).count()


def download_form(ctx, form_id, patient_id=None):
    """
    下载表单：记一条 DownloadAudit（谁 / 哪个患者 / correlation id / IP），
    审计 FORM_DOWNLOADED，返回 (form, 二进制流)。流由调用方负责关闭。
    """
    identity = require_user(ctx)
    form = get_form(form_id)

    patient = None
    if patient_id:
        patient = Patient.objects.filter(id=patient_id).first()
        if patient is None:
            raise NotFound('Patient', patient_id)

    stream = get_file_storage().retrieve_file(form.file_path)

    try:
        with transaction.atomic():
            DownloadAudit.objects.create(
                form_resource=form,
                user=User.objects.get(id=identity.id),
                patient=patient,
                correlation_id=ctx.correlation_id,
                ip_address=ctx.ip_address,
            )
    except Exception:
        stream.close()
        raise

    logger.info('Form downloaded: %s by user: %s', form.file_name, identity.email)
    audit.log_event(ctx, 'FORM_DOWNLOADED', 'FORM_RESOURCE', form.id, 'READ',
                    metadata={'patientId': patient.id if patient else None})
    return form, stream


def _delete_stored_object(key):
    try:
        get_file_storage().delete_file(key)
    except StorageFailure:
        logger.exception('Form row deleted but stored object %s could not be removed', key)


def delete_form(ctx, form_id):
    require_role(ctx, ADMIN_ROLE)
    form = get_form(form_id)

    with transaction.atomic():
        # 子版本的 parent 是 SET_NULL，不会被级联删掉
        FormResource.objects.filter(id=form.id).delete()
        # 行删除提交之后才删存储对象；事务回滚时文件还在
        transaction.on_commit(lambda: _delete_stored_object(form.file_path))

    logger.info('Form deleted: %s', form.file_name)
    audit.log_event(ctx, 'FORM_DELETED', 'FORM_RESOURCE', form_id, 'DELETE',
                    metadata={'fileName': form.file_name})


def get_form_presigned_url(form_id, expiry_seconds=DEFAULT_PRESIGNED_EXPIRY):
    """
    Raises:
        Unsupported: 当前存储 adapter 不支持 presigned URL
    """
    form = get_form(form_id)
    return get_file_storage().generate_presigned_url(form.file_path, int(expiry_seconds))
