"""
统一异常处理器。

挂到 DRF 的 EXCEPTION_HANDLER setting 上。
所有响应（无论成功还是失败）前端都能用同一套逻辑判断：
  response.type 存在 → 出问题了
  没有 type 字段    → 成功

统一错误响应格式：
{
    "type":    "validation_error" | "auth_error" | "not_found" | "block" | "dependency_error" | "error",
    "code":    "INVALID_CREDENTIALS",
    "message": "Invalid credentials",
    "detail":  { ... }  // 可选
}
"""

import logging

from django.http import JsonResponse
from rest_framework import exceptions as drf_exceptions

from .exceptions import BaseAppException

logger = logging.getLogger(__name__)


def unified_exception_handler(exc, context):
    """
    DRF exception handler entry point.

    优先级：
    1. BaseAppException 及其子类 → 统一格式
    2. DRF 自带的 ValidationError → 转成统一格式
    3. DRF 认证 / 权限 / 其他 APIException → 统一格式，保留状态码
    4. 其他异常 → 记录完整堆栈，对外只返回固定文案
    """

    # --- 1. 我们自己的异常体系 ---
    if isinstance(exc, BaseAppException):
        if exc.http_status >= 500:
            logger.error('%s: %s', exc.code, exc.message, exc_info=exc)
        body = {
            'type': exc.type,
            'code': exc.code,
            'message': exc.message,
        }
        if exc.detail is not None:
            body['detail'] = exc.detail
        return JsonResponse(body, status=exc.http_status)

    # --- 2. DRF 自带的 ValidationError ---
    if isinstance(exc, drf_exceptions.ValidationError):
        body = {
            'type': 'validation_error',
            'code': 'VALIDATION_ERROR',
            'message': 'Request validation failed',
            'detail': exc.detail,
        }
        return JsonResponse(body, status=400)

    # --- 3. DRF 认证 / 权限 ---
    if isinstance(exc, (drf_exceptions.NotAuthenticated, drf_exceptions.AuthenticationFailed)):
        return JsonResponse(
            {'type': 'auth_error', 'code': 'UNAUTHORIZED', 'message': 'Authentication required'},
            status=401,
        )

    if isinstance(exc, drf_exceptions.PermissionDenied):
        return JsonResponse(
            {'type': 'auth_error', 'code': 'FORBIDDEN', 'message': str(exc.detail)},
            status=403,
        )

    if isinstance(exc, drf_exceptions.APIException):
        return JsonResponse(
            {'type': 'error', 'code': exc.default_code.upper(), 'message': str(exc.detail)},
            status=exc.status_code,
        )

    # --- 4. 兜底：不泄露内部信息 ---
    view = context.get('view') if context else None
    logger.exception('Unhandled exception in %s', type(view).__name__ if view else 'unknown view', exc_info=exc)
    return JsonResponse(
        {'type': 'error', 'code': 'INTERNAL_ERROR', 'message': 'An unexpected error occurred'},
        status=500,
    )
