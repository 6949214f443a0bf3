import asyncio
import sys
from pathlib import Path

import structlog

from usagebar.credentials.base import (
    ChainedCredentialSource,
    CredentialSource,
    extract_access_token,
)
from usagebar.credentials.keychain import KeychainCredentialSource

logger = structlog.get_logger()

CREDENTIALS_FILENAME = ".credentials.json"


class FileCredentialSource:
    """
    FileCredentialSource reads the token from the credentials file
    Claude Code keeps on hosts without a keychain.
    """

    def __init__(self, path: "Path") -> "None":
        self._path = path

    @property
    def name(self) -> "str":
        return "file"

    async def get_token(self) -> "str | None":
        try:
            raw = await asyncio.to_thread(self._path.read_bytes)
        except OSError as exc:
            logger.debug("credentials_file_unreadable", path=str(self._path), error=str(exc))
            return None

        return extract_access_token(raw)


def default_credential_source(claude_dir: "Path") -> "CredentialSource":
    """
    keychain first and the credentials file as fallback on macOS,
    the credentials file alone everywhere else.
    """
    file_source = FileCredentialSource(claude_dir / CREDENTIALS_FILENAME)
    if sys.platform == "darwin":
        return ChainedCredentialSource([KeychainCredentialSource(), file_source])

    return file_source
