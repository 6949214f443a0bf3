import asyncio
from typing import Sequence

import structlog

from usagebar.credentials.base import extract_access_token

logger = structlog.get_logger()

# Claude Code CLI first, then the desktop app
KEYCHAIN_SERVICES: "tuple[str, ...]" = (
    "Claude Code-credentials",
    "Claude Safe Storage",
)


class KeychainCredentialSource:
    """
    KeychainCredentialSource reads the OAuth token from the macOS
    keychain through the `security` command line tool. Each service
    name is tried in order until one yields a parseable token.
    """

    def __init__(
        self,
        services: "Sequence[str]" = KEYCHAIN_SERVICES,
        security_bin: "str" = "security",
        timeout: "float" = 5.0,
    ) -> "None":
        self._services = tuple(services)
        self._security_bin = security_bin
        self._timeout = timeout

    @property
    def name(self) -> "str":
        return "keychain"

    async def get_token(self) -> "str | None":
        for service in self._services:
            secret = await self._read_secret(service)
            if secret is None:
                continue

            token = extract_access_token(secret)
            if token:
                logger.debug("keychain_lookup_hit", service=service)
                return token

            logger.debug("keychain_entry_unusable", service=service)

        return None

    async def _read_secret(self, service: "str") -> "bytes | None":
        """
        runs `security find-generic-password -s <service> -w` and
        returns its stdout, or None on any failure.
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                self._security_bin,
                "find-generic-password",
                "-s",
                service,
                "-w",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            logger.debug("keychain_unavailable", service=service, error=str(exc))
            return None

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("keychain_lookup_timeout", service=service)
            return None

        if proc.returncode != 0:
            logger.debug(
                "keychain_lookup_miss",
                service=service,
                returncode=proc.returncode,
            )
            return None

        return stdout.strip()
