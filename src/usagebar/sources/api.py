import httpx
import structlog

from usagebar.credentials.base import CredentialSource
from usagebar.errors import DecodeError, NetworkError, NoCredentialsError
from usagebar.models import UsageReading
from usagebar.parser import parse_usage_response

logger = structlog.get_logger()

USAGE_URL = "https://api.anthropic.com/api/oauth/usage"
ANTHROPIC_BETA = "oauth-2025-04-20"
USER_AGENT = "claude-code/2.0.31"


class ApiUsageSource:
    """
    ApiUsageSource implements the UsageSource protocol by calling the
    OAuth usage endpoint directly, with a token looked up on every
    fetch.
    """

    def __init__(
        self,
        credentials: "CredentialSource",
        url: "str" = USAGE_URL,
        timeout: "float" = 10.0,
        client: "httpx.AsyncClient | None" = None,
    ) -> "None":
        self._credentials = credentials
        self._url = url
        self._client: "httpx.AsyncClient" = client or httpx.AsyncClient(
            timeout=timeout,
            headers={
                "anthropic-beta": ANTHROPIC_BETA,
                "User-Agent": USER_AGENT,
                "Accept": "application/json",
            },
        )

    @property
    def name(self) -> "str":
        return "api"

    async def close(self) -> "None":
        """
        closes the underlying HTTP client.
        """
        await self._client.aclose()

    async def fetch(self) -> "UsageReading":
        token = await self._credentials.get_token()
        if not token:
            raise NoCredentialsError("Could not get token")

        logger.debug("api_fetch_usage", url=self._url)
        try:
            resp = await self._client.get(
                self._url,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            detail = str(exc) or type(exc).__name__
            raise NetworkError(f"Network error: {detail}") from exc

        if resp.status_code >= 400:
            return self._error_reading(resp)

        return parse_usage_response(resp.content)

    def _error_reading(self, resp: "httpx.Response") -> "UsageReading":
        """
        an error status whose body carries an error message is handed
        back as a reading so the poller reports the upstream message;
        anything else is a plain HTTP failure.
        """
        try:
            reading = parse_usage_response(resp.content)
        except DecodeError:
            reading = None

        logger.debug("api_error_status", status=resp.status_code)
        if reading is not None and reading.error is not None:
            return reading

        raise NetworkError(f"HTTP {resp.status_code}")
