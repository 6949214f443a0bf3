import json
from typing import Protocol, Sequence

import structlog

logger = structlog.get_logger()


class CredentialSource(Protocol):
    """
    CredentialSource stands as a common protocol for every place an
    OAuth access token can be read from (keychain, credentials file).

    get_token returns None when nothing usable was found; that is a
    reportable condition, not an error.
    """

    @property
    def name(self) -> "str": ...

    async def get_token(self) -> "str | None": ...


def extract_access_token(raw: "bytes | str") -> "str | None":
    """
    extracts claudeAiOauth.accessToken from a stored credentials
    blob. Returns None for anything that is not a JSON object holding
    a non-empty token string.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None

    if not isinstance(data, dict):
        return None

    oauth = data.get("claudeAiOauth")
    if not isinstance(oauth, dict):
        return None

    token = oauth.get("accessToken")
    if not isinstance(token, str) or not token:
        return None

    return token


class ChainedCredentialSource:
    """
    tries each source in order and returns the first token found.
    """

    def __init__(self, sources: "Sequence[CredentialSource]") -> "None":
        self._sources = list(sources)

    @property
    def name(self) -> "str":
        return "+".join(s.name for s in self._sources)

    async def get_token(self) -> "str | None":
        for source in self._sources:
            token = await source.get_token()
            if token:
                logger.debug("credential_source_hit", source=source.name)
                return token

            logger.debug("credential_source_miss", source=source.name)

        return None
