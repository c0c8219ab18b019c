"""
具体 AuthProvider 实现。

已注册：
  jwt — JwtAuthAdapter
"""

import logging
from datetime import datetime, timedelta, timezone

import jwt
from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.db import IntegrityError, transaction

from ..exceptions import DuplicateEmail, InvalidCredentials, ValidationFailure
from ..models import User
from .base import BaseAuthProvider
from .types import Identity

logger = logging.getLogger(__name__)

DEFAULT_ROLE = 'OFFICE_STAFF'


def to_identity(user: User) -> Identity:
    return Identity(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        roles=frozenset(user.roles or []),
    )


# ── JwtAuthAdapter ─────────────────────────────────────────────────────────
#
# 用户存在 users 表，密码用 Django 的 make_password 哈希。
# Token：HS256 JWT，claims = sub(email) / user_id / roles / iat / exp
# 配置：PORTAL_JWT_SECRET、PORTAL_JWT_EXPIRATION_SECONDS

class JwtAuthAdapter(BaseAuthProvider):

    ALGORITHM = 'HS256'

    def __init__(self, secret: str | None = None, expiration_seconds: int | None = None):
        self.secret = secret or settings.PORTAL_JWT_SECRET
        self.expiration_seconds = expiration_seconds or settings.PORTAL_JWT_EXPIRATION_SECONDS

    def authenticate(self, email: str, password: str) -> str:
        user = User.objects.filter(email__iexact=(email or '').strip()).first()

        if user is None or not check_password(password or '', user.password_hash):
            logger.info('Authentication failed for %s', email)
            raise InvalidCredentials()

        return self.issue_token(user)

    def issue_token(self, user: User) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            'sub': user.email,
            'user_id': user.id,
            'roles': list(user.roles or []),
            'iat': now,
            'exp': now + timedelta(seconds=self.expiration_seconds),
        }
        return jwt.encode(payload, self.secret, algorithm=self.ALGORITHM)

    def validate_token(self, token: str) -> Identity | None:
        if not token:
            return None

        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.ALGORITHM])
        except jwt.ExpiredSignatureError:
            logger.debug('Token expired')
            return None
        except jwt.InvalidTokenError as exc:
            logger.warning('Token validation failed: %s', exc)
            return None

        user_id = claims.get('user_id')
        if not isinstance(user_id, int):
            return None

        user = User.objects.filter(id=user_id).first()
        if user is None:
            return None

        return to_identity(user)

    def register_user(self, email: str, password: str, first_name: str, last_name: str) -> Identity:
        email = (email or '').strip().lower()
        if not email or not password:
            raise ValidationFailure('Email and password are required', code='MISSING_CREDENTIALS')

        if User.objects.filter(email__iexact=email).exists():
            raise DuplicateEmail()

        try:
            with transaction.atomic():
                user = User.objects.create(
                    email=email,
                    password_hash=make_password(password),
                    first_name=(first_name or '').strip(),
                    last_name=(last_name or '').strip(),
                    roles=[DEFAULT_ROLE],
                )
        except IntegrityError as exc:
            # 并发注册同一个邮箱
            raise DuplicateEmail() from exc

        logger.info('User registered: id=%s, email=%s', user.id, user.email)
        return to_identity(user)

    def get_current_user(self, ctx) -> Identity | None:
        if ctx is None:
            return None
        return ctx.user
