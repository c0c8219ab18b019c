"""
请求体字段类型检查：类型不对一律是 ValidationFailure，不会漏成 500。
"""

import pytest

from portal.exceptions import ValidationFailure
from portal.validation import int_field, parse_int, parse_text, text_field


class TestParseInt:

    @pytest.mark.parametrize('value,expected', [(7, 7), ('7', 7), (' 42 ', 42), (None, None), ('', None)])
    def test_accepted(self, value, expected):
        assert parse_int(value, 'provider_id') == expected

    @pytest.mark.parametrize('value', ['abc', '1.5', 1.5, True, [1], {'id': 1}])
    def test_rejected(self, value):
        with pytest.raises(ValidationFailure) as exc_info:
            parse_int(value, 'provider_id')
        assert exc_info.value.code == 'INVALID_FIELD'
        assert exc_info.value.detail == {'field': 'provider_id', 'expected': 'an integer'}
        assert exc_info.value.http_status == 400

    def test_required(self):
        with pytest.raises(ValidationFailure) as exc_info:
            int_field({}, 'program_id', required=True)
        assert exc_info.value.code == 'MISSING_FIELDS'
        assert exc_info.value.detail == {'fields': ['program_id']}


class TestParseText:

    def test_strips(self):
        assert parse_text('  Aetna ', 'payer_name') == 'Aetna'

    def test_blank_is_none(self):
        assert parse_text('   ', 'payer_name') is None
        assert text_field({}, 'payer_name') is None

    def test_keeps_whitespace_when_asked(self):
        assert text_field({'password': ' secret '}, 'password', strip=False) == ' secret '

    @pytest.mark.parametrize('value', [42, 4.2, False, ['Aetna'], {'name': 'Aetna'}])
    def test_rejected(self, value):
        with pytest.raises(ValidationFailure) as exc_info:
            parse_text(value, 'payer_name')
        assert exc_info.value.code == 'INVALID_FIELD'
        assert exc_info.value.detail == {'field': 'payer_name', 'expected': 'a string'}

    def test_required_blank(self):
        with pytest.raises(ValidationFailure) as exc_info:
            text_field({'title': '  '}, 'title', required=True)
        assert exc_info.value.code == 'MISSING_FIELDS'
