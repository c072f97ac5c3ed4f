"""Remote service lookup client for dbrestore."""

import base64
from typing import Any, Dict, Optional

import requests

from dbrestore.constants import API_TIMEOUT_SECONDS, DEFAULT_API_URL, DEFAULT_PORT
from dbrestore.errors import AuthenticationRequiredError, ConnectivityError, PreflightError
from dbrestore.errors_catalog import actionable_error
from dbrestore.models import ServiceEndpoint


class ServiceLookup:
    """Resolves a service identifier to its endpoint metadata."""

    def __init__(
        self,
        api_key: Optional[str],
        project_id: Optional[str],
        api_url: str = DEFAULT_API_URL,
        requests_module=requests,
        timeout: float = API_TIMEOUT_SECONDS,
    ):
        self.api_key = api_key
        self.project_id = project_id
        self.api_url = api_url.rstrip("/")
        self.requests = requests_module
        self.timeout = timeout

    def get_service(self, service_id: str) -> ServiceEndpoint:
        if not self.api_key or not self.project_id:
            raise AuthenticationRequiredError(
                actionable_error("authentication_required", reason="no API credentials configured")
            )

        url = f"{self.api_url}/projects/{self.project_id}/services/{service_id}"
        encoded_key = base64.b64encode(self.api_key.encode("utf-8")).decode("ascii")

        try:
            response = self.requests.get(
                url,
                headers={"Authorization": f"Basic {encoded_key}", "Accept": "application/json"},
                timeout=self.timeout,
            )
        except self.requests.RequestException as exc:
            raise ConnectivityError(f"Failed to reach the service API: {exc}") from exc

        if response.status_code in (401, 403):
            raise AuthenticationRequiredError(
                actionable_error(
                    "authentication_required",
                    reason=f"the API rejected the credentials (HTTP {response.status_code})",
                )
            )
        if response.status_code == 404:
            raise PreflightError(f"Service '{service_id}' not found in project '{self.project_id}'.")
        if response.status_code != 200:
            raise PreflightError(f"API error while fetching service details: HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise PreflightError("Service API returned an invalid JSON payload.") from exc

        return self._parse_service(payload, service_id)

    def _parse_service(self, payload: Dict[str, Any], service_id: str) -> ServiceEndpoint:
        endpoint = payload.get("endpoint") or {}
        host = endpoint.get("host")
        if not host:
            raise PreflightError(f"Service '{service_id}' has no endpoint available.")

        pooler_endpoint = (payload.get("connection_pooler") or {}).get("endpoint") or {}

        return ServiceEndpoint(
            service_id=payload.get("service_id") or service_id,
            project_id=payload.get("project_id") or self.project_id,
            host=host,
            port=int(endpoint.get("port") or DEFAULT_PORT),
            pooler_host=pooler_endpoint.get("host"),
            pooler_port=pooler_endpoint.get("port"),
        )
