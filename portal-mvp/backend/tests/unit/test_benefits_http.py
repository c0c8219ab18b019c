"""
HttpBenefitsApiAdapter：requests.Session 整个 mock 掉，不发真实请求。
"""

from datetime import date
from unittest.mock import MagicMock

import pytest
import requests

from portal.benefits import BenefitsInvestigationRequest, InvestigationType
from portal.benefits.adapters import HttpBenefitsApiAdapter
from portal.exceptions import TransportFailure


def make_adapter(session=None, **kwargs):
    kwargs.setdefault('base_url', 'https://bi.example.com/api/')
    kwargs.setdefault('api_key', 'secret-key')
    kwargs.setdefault('timeout', 5)
    return HttpBenefitsApiAdapter(session=session or MagicMock(headers={}), **kwargs)


def ok_response(body):
    response = MagicMock()
    response.ok = True
    response.json.return_value = body
    response.raise_for_status.return_value = None
    return response


class TestHttpBenefitsApiAdapter:

    def test_pharmacy_posts_json_and_maps_result(self):
        adapter = make_adapter()
        adapter.session.post.return_value = ok_response({
            'coverageStatus': 'ACTIVE',
            'coverageType': 'COMMERCIAL',
            'priorAuthRequired': True,
            'deductibleApplies': False,
            'specialtyPharmacyRequired': True,
            'notes': 'from payer',
            'additionalData': {'copay': 25},
        })

        result = adapter.investigate_pharmacy_coverage(BenefitsInvestigationRequest(
            investigation_type=InvestigationType.PHARMACY,
            payer_name='Aetna',
            member_id='M-1',
            medication_name='Humira',
            patient_dob=date(1980, 1, 15),
        ))

        url = adapter.session.post.call_args.args[0]
        kwargs = adapter.session.post.call_args.kwargs
        assert url == 'https://bi.example.com/api/investigations/pharmacy'
        assert kwargs['timeout'] == 5
        assert kwargs['json']['payerName'] == 'Aetna'
        assert kwargs['json']['patientDob'] == '1980-01-15'

        assert result.coverage_type == 'COMMERCIAL'
        assert result.prior_auth_required is True
        assert result.deductible_applies is False
        assert result.specialty_pharmacy_required is True
        assert result.additional_data == {'copay': 25}

    def test_bearer_key_on_session(self):
        adapter = make_adapter()
        assert adapter.session.headers['Authorization'] == 'Bearer secret-key'

    def test_medical_url(self):
        adapter = make_adapter()
        adapter.session.post.return_value = ok_response({})

        result = adapter.investigate_medical_coverage(
            BenefitsInvestigationRequest(investigation_type=InvestigationType.MEDICAL),
        )

        assert adapter.session.post.call_args.args[0].endswith('/investigations/medical')
        # 缺字段时给保守默认值
        assert result.coverage_status == 'UNKNOWN'
        assert result.coverage_type == 'UNKNOWN'

    def test_connection_error_becomes_transport_failure(self):
        adapter = make_adapter()
        adapter.session.post.side_effect = requests.ConnectionError('refused')

        with pytest.raises(TransportFailure) as exc_info:
            adapter.investigate_medical_coverage(
                BenefitsInvestigationRequest(investigation_type=InvestigationType.MEDICAL),
            )

        assert exc_info.value.http_status == 502
        assert isinstance(exc_info.value.__cause__, requests.ConnectionError)

    def test_non_2xx_becomes_transport_failure(self):
        adapter = make_adapter()
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError('503 Server Error')
        adapter.session.post.return_value = response

        with pytest.raises(TransportFailure):
            adapter.investigate_pharmacy_coverage(
                BenefitsInvestigationRequest(investigation_type=InvestigationType.PHARMACY),
            )

    def test_invalid_json_becomes_transport_failure(self):
        adapter = make_adapter()
        response = ok_response(None)
        response.json.side_effect = ValueError('no json')
        adapter.session.post.return_value = response

        with pytest.raises(TransportFailure):
            adapter.investigate_pharmacy_coverage(
                BenefitsInvestigationRequest(investigation_type=InvestigationType.PHARMACY),
            )

    def test_is_available_true_on_ok_health(self):
        adapter = make_adapter()
        adapter.session.get.return_value = MagicMock(ok=True)
        assert adapter.is_available() is True
        adapter.session.get.assert_called_once_with('https://bi.example.com/api/health', timeout=5)

    def test_is_available_false_on_request_error(self):
        adapter = make_adapter()
        adapter.session.get.side_effect = requests.Timeout('slow')
        assert adapter.is_available() is False
