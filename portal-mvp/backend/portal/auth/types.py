"""
Auth port 跨边界传递的值对象。

业务层只认识 Identity，不知道背后是本地 JWT 还是托管的身份服务。
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Identity:
    id: int
    email: str
    first_name: str = ''
    last_name: str = ''
    roles: frozenset = field(default_factory=frozenset)

    # DRF 的 IsAuthenticated 只看这个属性
    is_authenticated = True

    @property
    def full_name(self) -> str:
        return f'{self.first_name} {self.last_name}'.strip()

    def has_role(self, *roles: str) -> bool:
        return any(role in self.roles for role in roles)


@dataclass(frozen=True)
class AuthResult:
    token: str
    identity: Identity
