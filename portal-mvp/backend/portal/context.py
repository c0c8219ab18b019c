"""
RequestContext — 每个请求一份的执行上下文。

不用全局 / thread-local 的 security context，而是由 HTTP 层构造好后显式传给每个 service 函数，
测试时直接 new 一个即可，不需要模拟请求管线。
"""

import re
import uuid
from dataclasses import dataclass, field

from django.core.exceptions import ValidationError
from django.core.validators import validate_ipv46_address

from .auth.types import Identity
from .exceptions import Forbidden, Unauthorized

CORRELATION_HEADER = 'HTTP_X_CORRELATION_ID'

# 和 AuditEvent / DownloadAudit 的 correlation_id 列宽一致
MAX_CORRELATION_ID_LENGTH = 64
CORRELATION_ID_PATTERN = re.compile(r'[A-Za-z0-9._:-]{1,%d}' % MAX_CORRELATION_ID_LENGTH)


def _new_correlation_id() -> str:
    return str(uuid.uuid4())


def correlation_id_from_header(value) -> str:
    """客户端传来的 correlation id 超长或含奇怪字符时，换成新生成的。"""
    if value and CORRELATION_ID_PATTERN.fullmatch(value):
        return value
    return _new_correlation_id()


@dataclass(frozen=True)
class RequestContext:
    user: Identity | None = None
    correlation_id: str = field(default_factory=_new_correlation_id)
    ip_address: str = 'unknown'

    @classmethod
    def system(cls) -> 'RequestContext':
        """后台任务 / 系统操作用的匿名上下文。"""
        return cls(user=None)

    @classmethod
    def for_user(cls, user: Identity, **kwargs) -> 'RequestContext':
        return cls(user=user, **kwargs)

    @classmethod
    def from_request(cls, request) -> 'RequestContext':
        """
        从 DRF / Django request 构造。

        user 由 JwtAuthentication 放在 request.user 上；未认证时是 None。
        """
        meta = getattr(request, 'META', {})
        user = getattr(request, 'user', None)
        if not isinstance(user, Identity):
            user = None
        return cls(
            user=user,
            correlation_id=correlation_id_from_header(meta.get(CORRELATION_HEADER)),
            ip_address=client_ip_address(meta),
        )


def _valid_ip(value) -> str | None:
    if not value:
        return None
    value = value.strip()
    try:
        validate_ipv46_address(value)
    except ValidationError:
        return None
    return value


def client_ip_address(meta) -> str:
    """
    X-Forwarded-For 第一跳 → X-Real-IP → REMOTE_ADDR → 'unknown'。

    头里的值不是合法 IP（超长 / 伪造的垃圾）就跳过，看下一个来源。
    """
    forwarded_for = meta.get('HTTP_X_FORWARDED_FOR') or ''
    candidates = (
        forwarded_for.split(',')[0],
        meta.get('HTTP_X_REAL_IP'),
        meta.get('REMOTE_ADDR'),
    )
    for candidate in candidates:
        ip = _valid_ip(candidate)
        if ip is not None:
            return ip
    return 'unknown'


def require_user(ctx: RequestContext) -> Identity:
    """没有已认证身份就抛 Unauthorized。"""
    if ctx.user is None:
        raise Unauthorized()
    return ctx.user


def require_role(ctx: RequestContext, *roles: str) -> Identity:
    """已认证且至少具备其中一个角色，否则 Forbidden。"""
    user = require_user(ctx)
    if not user.has_role(*roles):
        raise Forbidden(f'Requires role: {", ".join(roles)}', code='ROLE_REQUIRED')
    return user
