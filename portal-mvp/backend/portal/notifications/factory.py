"""
工厂函数：根据 settings.PORTAL_NOTIFICATIONS 返回 NotificationPort 实例。
"""

from django.conf import settings

from .base import BaseNotifier

_instance: BaseNotifier | None = None


def _build_registry() -> dict[str, type[BaseNotifier]]:
    from .adapters import EmailNotificationAdapter, LoggingNotificationAdapter

    return {
        'logging': LoggingNotificationAdapter,
        'email':   EmailNotificationAdapter,
    }


def get_notifier() -> BaseNotifier:
    """
    Raises:
        ValueError: PORTAL_NOTIFICATIONS 未知
    """
    global _instance
    if _instance is not None:
        return _instance

    backend = getattr(settings, 'PORTAL_NOTIFICATIONS', 'logging')
    registry = _build_registry()
    notifier_cls = registry.get(backend)

    if notifier_cls is None:
        raise ValueError(
            f'Unknown PORTAL_NOTIFICATIONS: {backend!r}. '
            f'Known backends: {list(registry.keys())}'
        )

    _instance = notifier_cls()
    return _instance


def reset_notifier() -> None:
    global _instance
    _instance = None
