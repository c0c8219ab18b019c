"""
统一异常体系。

所有业务异常继承 BaseAppException，包含：
- type:        错误类型标识（validation_error / auth_error / not_found / block / ...）
- code:        业务错误码（INVALID_CREDENTIALS / AFFILIATION_REQUIRED / ...）
- message:     人类可读的描述（不能泄露内部状态）
- detail:      可选的附加信息（dict / list / None）
- http_status: HTTP 状态码

Port / Adapter 抛出的异常原样传给 service，service 决定是否补充业务上下文。
View 层只需 raise，exception_handler 统一捕获并格式化响应。
"""


class BaseAppException(Exception):
    """所有业务异常的基类。"""

    type = 'error'
    code = 'UNKNOWN_ERROR'
    http_status = 500

    def __init__(self, message, code=None, detail=None, http_status=None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)


class ValidationFailure(BaseAppException):
    """调用方输入违反前置条件，400。"""

    type = 'validation_error'
    code = 'VALIDATION_ERROR'
    http_status = 400


class InvalidCredentials(BaseAppException):
    """邮箱不存在或密码错误。两种情况返回同一条消息，不暴露是哪一个错了。"""

    type = 'auth_error'
    code = 'INVALID_CREDENTIALS'
    http_status = 401

    def __init__(self, message='Invalid credentials', **kwargs):
        super().__init__(message, **kwargs)


class Unauthorized(BaseAppException):
    """没有已认证的身份。"""

    type = 'auth_error'
    code = 'UNAUTHORIZED'
    http_status = 401

    def __init__(self, message='Authentication required', **kwargs):
        super().__init__(message, **kwargs)


class Forbidden(BaseAppException):
    """已认证，但没有权限（角色不够 / 没有 approved affiliation）。"""

    type = 'auth_error'
    code = 'FORBIDDEN'
    http_status = 403


class NotFound(BaseAppException):
    """资源不存在，按资源种类参数化：NotFound('Patient', 42)。"""

    type = 'not_found'
    code = 'NOT_FOUND'
    http_status = 404

    def __init__(self, resource, resource_id=None, message=None, **kwargs):
        self.resource = resource
        self.resource_id = resource_id
        if message is None:
            message = f'{resource} not found'
        kwargs.setdefault('code', f'{resource.upper().replace(" ", "_")}_NOT_FOUND')
        if resource_id is not None:
            kwargs.setdefault('detail', {'resource': resource, 'id': str(resource_id)})
        super().__init__(message, **kwargs)


class BlockError(BaseAppException):
    """业务规则阻止操作。service 层抛出，409。"""

    type = 'block'
    code = 'BUSINESS_BLOCK'
    http_status = 409


class DuplicateEmail(BlockError):
    code = 'DUPLICATE_EMAIL'

    def __init__(self, message='Email already registered', **kwargs):
        super().__init__(message, **kwargs)


class Unsupported(BaseAppException):
    """当前 adapter 不支持该能力（例如本地存储不支持 presigned URL）。"""

    type = 'unsupported'
    code = 'UNSUPPORTED_OPERATION'
    http_status = 501


class StorageFailure(BaseAppException):
    """
    文件存储的底层错误（网络、权限、磁盘）。

    原始异常通过 raise ... from exc 挂在 __cause__ 上，只记录在服务端日志里。
    """

    type = 'dependency_error'
    code = 'STORAGE_FAILURE'
    http_status = 502


class TransportFailure(BaseAppException):
    """外部 API 调用失败（超时 / 连接错误 / 非 2xx）。"""

    type = 'dependency_error'
    code = 'TRANSPORT_FAILURE'
    http_status = 502
