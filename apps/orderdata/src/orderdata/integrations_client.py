from __future__ import annotations

from typing import Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError


class IntegrationsClientError(RuntimeError):
    pass


class TemplatesClientError(IntegrationsClientError):
    pass


class ExecutionsClientError(IntegrationsClientError):
    pass


class TemplatesClient(Protocol):
    def render_template(self, name: str, args: dict[str, str]) -> bytes: ...


class ExecutionsClient(Protocol):
    def create_execution(self, payload: bytes) -> str: ...


class CreateExecutionResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    execution_id: str = Field(alias="executionId", min_length=1)


def _auth_headers(token: str) -> dict[str, str]:
    if not token:
        return {}
    return {"Authorization": f"Bearer {token}"}


class HttpTemplatesClient:
    def __init__(self, *, base_url: str, token: str = "", timeout_seconds: float = 30.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout_seconds = timeout_seconds

    def render_template(self, name: str, args: dict[str, str]) -> bytes:
        endpoint = f"{self._base_url}/templates/{name}/render"
        try:
            response = httpx.post(
                endpoint,
                json=args,
                headers=_auth_headers(self._token),
                timeout=self._timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise TemplatesClientError(f"could not render template {name!r}: {exc}") from exc

        if response.status_code != 200:
            raise TemplatesClientError(
                f"POST {endpoint} returned {response.status_code} "
                f"while attempting to render template {name!r}"
            )
        return response.content


class HttpExecutionsClient:
    def __init__(self, *, base_url: str, token: str = "", timeout_seconds: float = 30.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout_seconds = timeout_seconds

    def create_execution(self, payload: bytes) -> str:
        endpoint = f"{self._base_url}/executions"
        headers = {"Content-Type": "application/json", **_auth_headers(self._token)}
        try:
            response = httpx.post(
                endpoint,
                content=payload,
                headers=headers,
                timeout=self._timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise ExecutionsClientError(f"could not create execution: {exc}") from exc

        if response.status_code != 202:
            raise ExecutionsClientError(f"POST {endpoint} returned {response.status_code}")

        try:
            parsed = CreateExecutionResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise ExecutionsClientError(
                f"could not deserialize execution body as JSON: {exc}"
            ) from exc
        return parsed.execution_id
