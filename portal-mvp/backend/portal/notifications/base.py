"""
NotificationPort — 通知发送的 port。

实现：
  logging — LoggingNotificationAdapter（本地：只写日志）
  email   — EmailNotificationAdapter（django.core.mail）

所有方法都是 best-effort：调用方负责 catch 并记日志，不能让通知失败影响业务事务。
"""

from abc import ABC, abstractmethod


class BaseNotifier(ABC):

    @abstractmethod
    def send_email(self, to: str, subject: str, body: str) -> None:
        """纯文本邮件。"""

    @abstractmethod
    def send_html_email(self, to: str, subject: str, html_body: str) -> None:
        """HTML 邮件。"""

    def notify_enrollment_status_change(self, user_email: str, patient_name: str, new_status: str) -> None:
        self.send_email(
            user_email,
            f'Enrollment status update for {patient_name}',
            f'The enrollment for {patient_name} is now {new_status}.',
        )

    def notify_provider_affiliation_approved(self, user_email: str, provider_name: str) -> None:
        self.send_email(
            user_email,
            'Provider affiliation approved',
            f'Your affiliation with {provider_name} has been approved. '
            f'You can now create and view patient records.',
        )
