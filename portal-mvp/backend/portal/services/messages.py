import logging

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from .. import audit
from ..context import require_user
from ..events import publish_safely
from ..events.types import MessageSent
from ..exceptions import BlockError, NotFound, ValidationFailure
from ..models import Message, MessageAttachment, MessageThread, Patient, Program, User
from ..storage import get_file_storage
from ..validation import parse_int, parse_text
from .forms import validate_upload

logger = logging.getLogger(__name__)

MAX_ATTACHMENT_SIZE = 10 * 1024 * 1024  # 10MB
ATTACHMENT_PREFIX = 'attachments'


def _get_thread(thread_id):
    thread = (
        MessageThread.objects
        .select_related('program', 'patient', 'created_by')
        .filter(id=thread_id)
        .first()
    )
    if thread is None:
        raise NotFound('Thread', thread_id)
    return thread


def unread_count(thread, user_id) -> int:
    """别人发的、还没读的消息数。"""
    return thread.messages.filter(read_at__isnull=True).exclude(sent_by_id=user_id).count()


def create_thread(ctx, subject, program_id=None, patient_id=None):
    identity = require_user(ctx)

    subject = parse_text(subject, 'subject', required=True)
    program_id = parse_int(program_id, 'program_id')
    patient_id = parse_int(patient_id, 'patient_id')

    program = None
    if program_id is not None:
        program = Program.objects.filter(id=program_id).first()
        if program is None:
            raise NotFound('Program', program_id)

    patient = None
    if patient_id is not None:
        patient = Patient.objects.filter(id=patient_id).first()
        if patient is None:
            raise NotFound('Patient', patient_id)

    with transaction.atomic():
        thread = MessageThread.objects.create(
            subject=subject,
            program=program,
            patient=patient,
            created_by=User.objects.get(id=identity.id),
        )

    logger.info('Message thread created: id=%s, subject=%s, createdBy=%s', thread.id, subject, identity.id)
    audit.log_event(ctx, 'MESSAGE_THREAD_CREATED', 'THREAD', thread.id, 'CREATE')
    return thread


def get_threads(ctx, page=0, size=audit.DEFAULT_PAGE_SIZE):
    """
    当前用户参与的 thread：自己创建的，或者自己在里面发过消息的。
    最近有消息的排前面。
    """
    identity = require_user(ctx)
    qs = (
        MessageThread.objects
        .filter(Q(created_by_id=identity.id) | Q(messages__sent_by_id=identity.id))
        .distinct()
        .select_related('program', 'patient', 'created_by')
        .order_by(F('last_message_at').desc(nulls_last=True), '-created_at', '-id')
    )
    return audit.paginate(qs, page, size)


def get_thread(ctx, thread_id):
    """返回 (thread, messages)，同时把别人发给我的未读消息标记为已读。"""
    identity = require_user(ctx)
    thread = _get_thread(thread_id)

    with transaction.atomic():
        marked = (
            Message.objects
            .filter(thread=thread, read_at__isnull=True)
            .exclude(sent_by_id=identity.id)
            .update(read_at=timezone.now())
        )

    if marked:
        logger.debug('Marked %d messages read in thread %s for user %s', marked, thread.id, identity.id)

    messages = list(
        thread.messages
        .select_related('sent_by')
        .prefetch_related('attachments')
        .order_by('sent_at', 'id')
    )
    return thread, messages


def send_message(ctx, thread_id, content, attachment_ids=None):
    identity = require_user(ctx)

    content = parse_text(content, 'content', required=True)

    thread = _get_thread(thread_id)
    if attachment_ids is None:
        attachment_ids = []
    if not isinstance(attachment_ids, (list, tuple)):
        raise ValidationFailure('attachment_ids must be a list of integers', code='INVALID_ATTACHMENT_IDS')
    try:
        attachment_ids = [int(a) for a in attachment_ids]
    except (TypeError, ValueError):
        raise ValidationFailure('attachment_ids must be integers', code='INVALID_ATTACHMENT_IDS')

    with transaction.atomic():
        message = Message.objects.create(
            thread=thread,
            content=content,
            sent_by=User.objects.get(id=identity.id),
        )

        if attachment_ids:
            attachments = MessageAttachment.objects.select_for_update().filter(id__in=attachment_ids)
            found = {a.id: a for a in attachments}
            missing = [a for a in attachment_ids if a not in found]
            if missing:
                raise NotFound('Attachment', missing[0])
            for attachment in found.values():
                if attachment.uploaded_by_id != identity.id:
                    raise BlockError('Attachment belongs to another user', code='ATTACHMENT_NOT_OWNED',
                                     detail={'attachment_id': attachment.id})
                if attachment.message_id is not None:
                    raise BlockError('Attachment is already attached to a message',
                                     code='ATTACHMENT_ALREADY_USED', detail={'attachment_id': attachment.id})
            MessageAttachment.objects.filter(id__in=list(found)).update(message=message)

        thread.last_message_at = message.sent_at
        thread.save(update_fields=['last_message_at'])

    logger.info('Message sent: id=%s, threadId=%s, sentBy=%s', message.id, thread.id, identity.id)
    audit.log_event(ctx, 'MESSAGE_SENT', 'MESSAGE', message.id, 'CREATE',
                    metadata={'threadId': thread.id, 'attachmentCount': len(attachment_ids)})
    publish_safely(MessageSent(message_id=message.id, thread_id=thread.id, sent_by_id=identity.id))
    return message


def upload_attachment(ctx, upload):
    """
    上传附件（还没挂到任何消息上），之后由 send_message 的 attachment_ids 关联。
    """
    identity = require_user(ctx)
    validate_upload(upload, MAX_ATTACHMENT_SIZE)

    storage = get_file_storage()
    content_type = upload.content_type or 'application/octet-stream'
    key = storage.store_file(upload.name, content_type, upload, upload.size, prefix=ATTACHMENT_PREFIX)

    try:
        with transaction.atomic():
            attachment = MessageAttachment.objects.create(
                file_path=key,
                file_name=upload.name,
                file_size=upload.size,
                mime_type=content_type,
                uploaded_by=User.objects.get(id=identity.id),
            )
    except Exception:
        logger.error('Failed to persist attachment %s, removing stored object %s', upload.name, key)
        try:
            storage.delete_file(key)
        except Exception:
            logger.exception('Failed to clean up stored object %s', key)
        raise

    logger.info('Attachment uploaded: id=%s, fileName=%s, uploadedBy=%s', attachment.id, upload.name, identity.id)
    audit.log_event(ctx, 'ATTACHMENT_UPLOADED', 'ATTACHMENT', attachment.id, 'CREATE')
    return attachment


def download_attachment(ctx, attachment_id):
    """返回 (attachment, bytes)。只有已经挂到消息上的附件才能下载。"""
    identity = require_user(ctx)

    attachment = MessageAttachment.objects.filter(id=attachment_id).first()
    if attachment is None:
        raise NotFound('Attachment', attachment_id)

    if attachment.message_id is None:
        raise BlockError('Attachment not associated with a message', code='ATTACHMENT_NOT_SENT')

    stream = get_file_storage().retrieve_file(attachment.file_path)
    try:
        content = stream.read()
    finally:
        stream.close()

    logger.info('Attachment downloaded: id=%s, fileName=%s, downloadedBy=%s',
                attachment.id, attachment.file_name, identity.id)
    audit.log_event(ctx, 'ATTACHMENT_DOWNLOADED', 'ATTACHMENT', attachment.id, 'VIEW')
    return attachment, content
