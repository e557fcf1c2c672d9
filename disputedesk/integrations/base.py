import httpx

from disputedesk.common.logging import get_logger


class BaseIntegration:
    """Base class for all external collaborator clients.

    Provides common logging, bearer-auth headers and a required health_check
    so the application can verify connectivity on demand.
    """

    def __init__(self, name: str, base_url: str, api_key: str, timeout: float = 10.0):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.logger = get_logger(f"integrations.{name}")

    @property
    def is_mock(self) -> bool:
        return self.api_key.startswith("mock_")

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        if extra:
            headers.update(extra)
        return headers

    async def health_check(self) -> bool:
        if self.is_mock:
            self.logger.info("%s health check: OK (mock)", self.name)
            return True
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(f"{self.base_url}/health", headers=self._headers())
                return resp.status_code == 200
        except httpx.HTTPError as e:
            self.logger.error("%s health check failed: %s", self.name, e)
            return False
