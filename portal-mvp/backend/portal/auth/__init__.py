from .factory import get_auth_provider, reset_auth_provider
from .types import AuthResult, Identity

__all__ = ['AuthResult', 'Identity', 'get_auth_provider', 'reset_auth_provider']
