"""
具体 NotificationPort 实现。

已注册：
  logging — LoggingNotificationAdapter
  email   — EmailNotificationAdapter  (PORTAL_NOTIFICATION_FROM_EMAIL + Django EMAIL_* 配置)
"""

import logging

from django.conf import settings
from django.core.mail import send_mail
from django.utils.html import strip_tags

from .base import BaseNotifier

logger = logging.getLogger(__name__)


class LoggingNotificationAdapter(BaseNotifier):

    def send_email(self, to: str, subject: str, body: str) -> None:
        logger.info('[notification] to=%s subject=%r body=%r', to, subject, body)

    def send_html_email(self, to: str, subject: str, html_body: str) -> None:
        logger.info('[notification] to=%s subject=%r html_length=%d', to, subject, len(html_body))


class EmailNotificationAdapter(BaseNotifier):

    def __init__(self, from_email: str | None = None):
        self.from_email = from_email or settings.PORTAL_NOTIFICATION_FROM_EMAIL

    def send_email(self, to: str, subject: str, body: str) -> None:
        send_mail(subject, body, self.from_email, [to], fail_silently=False)
        logger.info('Email sent to %s: %s', to, subject)

    def send_html_email(self, to: str, subject: str, html_body: str) -> None:
        send_mail(
            subject, strip_tags(html_body), self.from_email, [to],
            html_message=html_body, fail_silently=False,
        )
        logger.info('HTML email sent to %s: %s', to, subject)
