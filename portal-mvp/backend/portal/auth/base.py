"""
AuthProvider — 认证 / 用户管理的 port。

实现：
  jwt — JwtAuthAdapter（本地密码哈希 + HS256 签名 token）

换身份服务（OIDC / Cognito）只需新写一个 adapter 并在 factory.py 注册，
service 代码零改动。
"""

from abc import ABC, abstractmethod

from ..exceptions import InvalidCredentials
from .types import AuthResult, Identity


class BaseAuthProvider(ABC):

    @abstractmethod
    def authenticate(self, email: str, password: str) -> str:
        """
        校验凭证，返回 opaque token。

        Raises:
            InvalidCredentials: 邮箱不存在或密码不对（不区分是哪一种）
        """

    @abstractmethod
    def validate_token(self, token: str) -> Identity | None:
        """
        解析 token → Identity。

        格式错误、过期、签名不对、用户已不存在，一律返回 None，不抛异常；
        调用方把 None 当成"未认证"处理（fail closed）。
        """

    @abstractmethod
    def register_user(self, email: str, password: str, first_name: str, last_name: str) -> Identity:
        """
        注册新用户，分配默认的最小权限角色。

        Raises:
            DuplicateEmail: 邮箱已注册
        """

    def login(self, email: str, password: str) -> AuthResult:
        """
        登录接口用：校验凭证并把 token 解析回 Identity，一起返回。

        Raises:
            InvalidCredentials: 凭证不对，或者刚签发的 token 解析不出身份
        """
        token = self.authenticate(email, password)
        identity = self.validate_token(token)
        if identity is None:
            raise InvalidCredentials()
        return AuthResult(token=token, identity=identity)

    @abstractmethod
    def get_current_user(self, ctx) -> Identity | None:
        """从请求上下文里读当前身份；没有则返回 None。"""
