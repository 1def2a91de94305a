"""HTTP client for the summons workflow API."""

import uuid
from typing import Any

import httpx

from rechtstreeks.models.sections import Section, SectionKey
from rechtstreeks.models.summons import AssembledDocument


class ApiError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, body: Any) -> None:
        super().__init__(f"API request failed with {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class AuthenticationLost(ApiError):
    """401 from the API; the session is no longer valid."""


class WorkflowApiClient:
    """Thin async client for the section workflow endpoints."""

    def __init__(
        self,
        user_id: uuid.UUID,
        base_url: str = "http://localhost:8000",
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize API client.

        Args:
            user_id: Authenticated user (sent as bearer token)
            base_url: Backend base URL
            client: Optional httpx client (for testing with an ASGI transport)
            timeout: Request timeout in seconds
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._headers = {"Authorization": f"Bearer {user_id}"}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def list_sections(self, case_id: uuid.UUID, summons_id: uuid.UUID) -> list[Section]:
        data = await self._request("GET", f"{self._base(case_id, summons_id)}/sections")
        return [Section.model_validate(item) for item in data]

    async def generate(
        self, case_id: uuid.UUID, summons_id: uuid.UUID, key: SectionKey
    ) -> Section:
        return await self._command(case_id, summons_id, key, "generate")

    async def reopen(self, case_id: uuid.UUID, summons_id: uuid.UUID, key: SectionKey) -> Section:
        return await self._command(case_id, summons_id, key, "reopen")

    async def approve(
        self, case_id: uuid.UUID, summons_id: uuid.UUID, key: SectionKey
    ) -> Section:
        return await self._command(case_id, summons_id, key, "approve")

    async def reject(
        self, case_id: uuid.UUID, summons_id: uuid.UUID, key: SectionKey, feedback: str = ""
    ) -> Section:
        return await self._command(case_id, summons_id, key, "reject", {"feedback": feedback})

    async def assemble(self, case_id: uuid.UUID, summons_id: uuid.UUID) -> AssembledDocument:
        data = await self._request("POST", f"{self._base(case_id, summons_id)}/assemble")
        return AssembledDocument.model_validate(data)

    @staticmethod
    def _base(case_id: uuid.UUID, summons_id: uuid.UUID) -> str:
        return f"/api/cases/{case_id}/summons/{summons_id}"

    async def _command(
        self,
        case_id: uuid.UUID,
        summons_id: uuid.UUID,
        key: SectionKey,
        command: str,
        body: dict[str, Any] | None = None,
    ) -> Section:
        path = f"{self._base(case_id, summons_id)}/sections/{key.value}/{command}"
        return Section.model_validate(await self._request("POST", path, body))

    async def _request(self, method: str, path: str, body: dict[str, Any] | None = None) -> Any:
        """Send a request and decode the JSON body.

        Raises:
            AuthenticationLost: On 401
            ApiError: On any other non-2xx response
            httpx.TransportError: On network errors
        """
        response = await self._client.request(method, path, json=body, headers=self._headers)

        if response.status_code == 401:
            raise AuthenticationLost(401, _body(response))
        if response.status_code >= 400:
            raise ApiError(response.status_code, _body(response))
        return response.json()


def _body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
