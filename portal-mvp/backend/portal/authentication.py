"""
DRF 认证 / 权限。

JwtAuthentication 只是把 Authorization: Bearer <token> 交给 auth port 校验，
request.user 上放的是 Identity，不是 Django 的 auth User。
"""

import logging

from rest_framework.authentication import BaseAuthentication, get_authorization_header
from rest_framework.permissions import BasePermission

from .auth import get_auth_provider

logger = logging.getLogger(__name__)


class JwtAuthentication(BaseAuthentication):
    keyword = 'Bearer'

    def authenticate(self, request):
        header = get_authorization_header(request).split()
        if not header or header[0].lower() != self.keyword.lower().encode():
            return None
        if len(header) != 2:
            return None

        try:
            token = header[1].decode()
        except UnicodeError:
            return None

        identity = get_auth_provider().validate_token(token)
        if identity is None:
            # token 无效 → 当作未认证，由 permission 决定返回 401
            return None
        return identity, token

    def authenticate_header(self, request):
        return self.keyword


def HasRole(*roles):
    """
    权限工厂：permission_classes = [HasRole('ADMIN')]。
    已认证且至少具备其中一个角色。
    """

    class _HasRole(BasePermission):
        message = f'Requires role: {", ".join(roles)}'

        def has_permission(self, request, view):
            user = getattr(request, 'user', None)
            return bool(user is not None and getattr(user, 'is_authenticated', False) and user.has_role(*roles))

    _HasRole.__name__ = f'HasRole({",".join(roles)})'
    return _HasRole
