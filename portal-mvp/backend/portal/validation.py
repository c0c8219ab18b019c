"""
请求体字段的类型检查。

JSON body 里的值可以是任意类型；service 在拿它们查 ORM 或调 .strip() 之前先过这里，
类型不对统一抛 ValidationFailure（400）。
"""

from .exceptions import ValidationFailure


def _missing(name):
    return ValidationFailure(f'{name} is required', code='MISSING_FIELDS', detail={'fields': [name]})


def _invalid(name, expected):
    return ValidationFailure(
        f'{name} must be {expected}',
        code='INVALID_FIELD',
        detail={'field': name, 'expected': expected},
    )


def parse_int(value, name, required=False):
    """
    int 或纯数字字符串 → int；None / '' → None（required 时抛 MISSING_FIELDS）。

    bool 虽然是 int 的子类，这里也当作类型错误。
    """
    if value is None or value == '':
        if required:
            raise _missing(name)
        return None

    if isinstance(value, bool):
        raise _invalid(name, 'an integer')
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise _invalid(name, 'an integer')


def parse_text(value, name, required=False, strip=True):
    """
    字符串（默认去掉首尾空白）；None / 空串 → None（required 时抛 MISSING_FIELDS）。
    """
    if value is None:
        if required:
            raise _missing(name)
        return None

    if not isinstance(value, str):
        raise _invalid(name, 'a string')
    if strip:
        value = value.strip()
    if not value:
        if required:
            raise _missing(name)
        return None
    return value


def int_field(data, name, required=False):
    return parse_int(data.get(name), name, required)


def text_field(data, name, required=False, strip=True):
    return parse_text(data.get(name), name, required, strip)
