import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from .. import audit
from ..context import require_role, require_user
from ..events import publish_safely
from ..events.types import AffiliationVerified
from ..exceptions import BlockError, Forbidden, NotFound
from ..models import Provider, ProviderAffiliation, User
from ..validation import parse_int, parse_text

logger = logging.getLogger(__name__)

ADMIN_ROLE = 'ADMIN'


def has_approved_affiliation(user_id) -> bool:
    return ProviderAffiliation.objects.filter(user_id=user_id, status='APPROVED').exists()


def require_approved_affiliation(ctx, action='access patients'):
    """
    患者相关的操作都要求当前用户至少有一个 APPROVED 的 provider affiliation。

    Raises:
        Unauthorized: 未认证
        Forbidden: 没有 approved affiliation
    """
    user = require_user(ctx)
    if not has_approved_affiliation(user.id):
        raise Forbidden(
            f'User must have an approved provider affiliation to {action}',
            code='AFFILIATION_REQUIRED',
        )
    return user


def request_affiliation(ctx, provider_id):
    """
    当前用户申请关联到一个 provider，新记录状态为 PENDING。

    - provider 不存在 → NotFound
    - 同一 user + provider 已有申请（无论状态）→ BlockError AFFILIATION_EXISTS
    """
    identity = require_user(ctx)
    provider_id = parse_int(provider_id, 'provider_id', required=True)

    provider = Provider.objects.filter(id=provider_id).first()
    if provider is None:
        raise NotFound('Provider', provider_id)

    if ProviderAffiliation.objects.filter(user_id=identity.id, provider=provider).exists():
        raise BlockError(
            'Affiliation request already exists for this provider',
            code='AFFILIATION_EXISTS',
            detail={'provider_id': provider.id},
        )

    try:
        with transaction.atomic():
            affiliation = ProviderAffiliation.objects.create(
                user=User.objects.get(id=identity.id),
                provider=provider,
                status='PENDING',
            )
    except IntegrityError as exc:
        raise BlockError(
            'Affiliation request already exists for this provider',
            code='AFFILIATION_EXISTS',
            detail={'provider_id': provider.id},
        ) from exc

    logger.info('Provider affiliation requested: user=%s, provider=%s', identity.id, provider.id)
    audit.log_event(ctx, 'AFFILIATION_REQUESTED', 'PROVIDER_AFFILIATION', affiliation.id, 'CREATE',
                    metadata={'providerId': provider.id})
    return affiliation


def get_user_affiliations(ctx):
    identity = require_user(ctx)
    return list(
        ProviderAffiliation.objects
        .filter(user_id=identity.id)
        .select_related('provider', 'user', 'verified_by')
        .order_by('-requested_at', '-id')
    )


def get_pending_affiliations(ctx):
    require_role(ctx, ADMIN_ROLE)
    return list(
        ProviderAffiliation.objects
        .filter(status='PENDING')
        .select_related('provider', 'user')
        .order_by('requested_at', 'id')
    )


def verify_affiliation(ctx, affiliation_id, approved, reason=None):
    """
    管理员审批 affiliation。只有 PENDING 的能被处理，处理过的再审批 → BlockError。
    """
    admin = require_role(ctx, ADMIN_ROLE)
    reason = parse_text(reason, 'reason')

    with transaction.atomic():
        affiliation = (
            ProviderAffiliation.objects
            .select_for_update()
            .select_related('provider', 'user')
            .filter(id=affiliation_id)
            .first()
        )
        if affiliation is None:
            raise NotFound('Affiliation', affiliation_id)

        if affiliation.status != 'PENDING':
            raise BlockError(
                'Affiliation has already been processed',
                code='AFFILIATION_ALREADY_PROCESSED',
                detail={'status': affiliation.status},
            )

        affiliation.status = 'APPROVED' if approved else 'REJECTED'
        affiliation.verified_at = timezone.now()
        affiliation.verified_by = User.objects.get(id=admin.id)
        affiliation.verification_reason = reason
        affiliation.save()

    logger.info('Provider affiliation verified: id=%s, approved=%s, admin=%s',
                affiliation.id, approved, admin.id)

    audit.log_event(
        ctx, 'AFFILIATION_VERIFIED', 'PROVIDER_AFFILIATION', affiliation.id,
        'APPROVE' if approved else 'REJECT',
        metadata={'userId': affiliation.user_id, 'providerId': affiliation.provider_id, 'reason': reason},
    )
    publish_safely(AffiliationVerified(
        affiliation_id=affiliation.id,
        user_email=affiliation.user.email,
        provider_name=affiliation.provider.name,
        approved=bool(approved),
    ))
    return affiliation
