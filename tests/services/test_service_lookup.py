import base64

import pytest
import requests

from dbrestore.errors import AuthenticationRequiredError, ConnectivityError, PreflightError
from dbrestore.services.service_lookup import ServiceLookup


class FakeResponse:
    def __init__(self, status_code=200, payload=None, invalid_json=False):
        self.status_code = status_code
        self.payload = payload
        self.invalid_json = invalid_json

    def json(self):
        if self.invalid_json:
            raise ValueError("not json")
        return self.payload


class FakeRequests:
    RequestException = requests.RequestException

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, headers=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


SERVICE_PAYLOAD = {
    "service_id": "svc-1",
    "project_id": "proj-9",
    "endpoint": {"host": "svc-1.example.com", "port": 34567},
    "connection_pooler": {"endpoint": {"host": "pool.example.com", "port": 6432}},
}


def _lookup(fake, api_key="key", project_id="proj-9"):
    return ServiceLookup(
        api_key=api_key,
        project_id=project_id,
        api_url="https://api.example.com/v1/",
        requests_module=fake,
    )


def test_get_service_parses_endpoint_and_sends_basic_auth():
    fake = FakeRequests(response=FakeResponse(payload=SERVICE_PAYLOAD))

    service = _lookup(fake).get_service("svc-1")

    assert service.host == "svc-1.example.com"
    assert service.port == 34567
    assert service.pooling_available is True
    assert service.pooler_port == 6432
    call = fake.calls[0]
    assert call["url"] == "https://api.example.com/v1/projects/proj-9/services/svc-1"
    assert call["headers"]["Authorization"] == "Basic " + base64.b64encode(b"key").decode("ascii")
    assert call["timeout"] == 30


def test_get_service_defaults_port_without_pooler():
    fake = FakeRequests(response=FakeResponse(payload={"endpoint": {"host": "h.example.com"}}))

    service = _lookup(fake).get_service("svc-2")

    assert service.port == 5432
    assert service.service_id == "svc-2"
    assert service.project_id == "proj-9"
    assert service.pooling_available is False


def test_missing_credentials_skip_the_network():
    fake = FakeRequests(response=FakeResponse(payload=SERVICE_PAYLOAD))

    with pytest.raises(AuthenticationRequiredError, match="DBRESTORE_API_KEY"):
        _lookup(fake, api_key=None).get_service("svc-1")

    assert fake.calls == []


@pytest.mark.parametrize("status", [401, 403])
def test_rejected_credentials_raise_authentication_required(status):
    fake = FakeRequests(response=FakeResponse(status_code=status))

    with pytest.raises(AuthenticationRequiredError, match=f"HTTP {status}"):
        _lookup(fake).get_service("svc-1")


def test_not_found_raises_preflight_error():
    fake = FakeRequests(response=FakeResponse(status_code=404))

    with pytest.raises(PreflightError, match="Service 'svc-1' not found"):
        _lookup(fake).get_service("svc-1")


def test_server_error_raises_preflight_error():
    fake = FakeRequests(response=FakeResponse(status_code=500))

    with pytest.raises(PreflightError, match="HTTP 500"):
        _lookup(fake).get_service("svc-1")


def test_transport_error_raises_connectivity_error():
    fake = FakeRequests(error=requests.ConnectionError("dns failure"))

    with pytest.raises(ConnectivityError, match="dns failure"):
        _lookup(fake).get_service("svc-1")


def test_invalid_payloads_raise_preflight_error():
    with pytest.raises(PreflightError, match="invalid JSON"):
        _lookup(FakeRequests(response=FakeResponse(invalid_json=True))).get_service("svc-1")

    with pytest.raises(PreflightError, match="no endpoint"):
        _lookup(FakeRequests(response=FakeResponse(payload={"endpoint": {}}))).get_service("svc-1")
