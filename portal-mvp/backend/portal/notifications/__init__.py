from .factory import get_notifier, reset_notifier

__all__ = ['get_notifier', 'reset_notifier']
