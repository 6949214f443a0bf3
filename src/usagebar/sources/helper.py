import asyncio
import os
import tempfile
from pathlib import Path
from typing import Sequence

import structlog

from usagebar.errors import HelperError, NoCacheFileError
from usagebar.models import UsageReading
from usagebar.parser import parse_usage_response

logger = structlog.get_logger()

HELPER_FILENAME = "fetch-usage.sh"
CACHE_FILENAME = "usage-cache.json"

# shared install locations checked after the user's own copy
SHARED_HELPER_PATHS: "tuple[Path, ...]" = (
    Path("/usr/local/share/usagebar") / HELPER_FILENAME,
    Path("/opt/homebrew/share/usagebar") / HELPER_FILENAME,
)

DEFAULT_HELPER_SCRIPT = """\
#!/bin/bash
# Writes the current OAuth usage to $USAGEBAR_CACHE_FILE.
CACHE_FILE="${USAGEBAR_CACHE_FILE:-$HOME/.claude/usage-cache.json}"

extract_token() {
    python3 -c "import sys,json; print(json.load(sys.stdin)['claudeAiOauth']['accessToken'])" 2>/dev/null
}

get_token() {
    local creds token service
    for service in "Claude Code-credentials" "Claude Safe Storage"; do
        creds=$(security find-generic-password -s "$service" -w 2>/dev/null)
        if [ -n "$creds" ]; then
            token=$(echo "$creds" | extract_token)
            if [ -n "$token" ]; then echo "$token"; return 0; fi
        fi
    done
    if [ -f "$HOME/.claude/.credentials.json" ]; then
        token=$(extract_token < "$HOME/.claude/.credentials.json")
        if [ -n "$token" ]; then echo "$token"; return 0; fi
    fi
    return 1
}

TOKEN=$(get_token)
if [ -z "$TOKEN" ]; then
    echo '{"error": "Could not get token"}' > "$CACHE_FILE"
    exit 1
fi

USAGE=$(curl -s \\
    -H "Authorization: Bearer $TOKEN" \\
    -H "anthropic-beta: oauth-2025-04-20" \\
    -H "User-Agent: claude-code/2.0.31" \\
    "https://api.anthropic.com/api/oauth/usage")
TIMESTAMP=$(date -u +"%Y-%m-%dT%H:%M:%SZ")
echo "$USAGE" | python3 -c "import sys,json; d=json.load(sys.stdin); d['fetched_at']='$TIMESTAMP'; print(json.dumps(d))" > "$CACHE_FILE"
"""


class HelperUsageSource:
    """
    HelperUsageSource implements the UsageSource protocol by running an
    external helper script that does the credential lookup and the
    HTTP call itself and leaves its result in a cache file. The wait
    for the helper is bounded; a helper that overruns is killed.
    """

    def __init__(
        self,
        claude_dir: "Path",
        candidates: "Sequence[Path] | None" = None,
        timeout: "float" = 30.0,
        shell: "str" = "/bin/bash",
    ) -> "None":
        self._claude_dir = claude_dir
        self._fallback_path = claude_dir / HELPER_FILENAME
        self._candidates: "list[Path]" = (
            list(candidates)
            if candidates is not None
            else [self._fallback_path, *SHARED_HELPER_PATHS]
        )
        self._timeout = timeout
        self._shell = shell
        self.cache_file = claude_dir / CACHE_FILENAME

    @property
    def name(self) -> "str":
        return "helper"

    async def close(self) -> "None":
        pass

    async def fetch(self) -> "UsageReading":
        script = await self._locate_script()
        await self._run_helper(script)
        return await self._read_cache()

    async def _locate_script(self) -> "Path":
        """
        returns the first existing helper; if there is none, writes the
        bundled default to the fallback path and returns that.
        """
        for candidate in self._candidates:
            if candidate.is_file():
                return candidate

        logger.info("helper_script_missing", path=str(self._fallback_path))
        await asyncio.to_thread(self._materialize_default)
        return self._fallback_path

    def _materialize_default(self) -> "None":
        # written to a temp file and renamed into place, so a concurrent
        # reader never sees a partial or non-executable script
        target = self._fallback_path
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=target.parent, prefix=f".{HELPER_FILENAME}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(DEFAULT_HELPER_SCRIPT)
            os.chmod(tmp_path, 0o755)
            os.replace(tmp_path, target)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    async def _run_helper(self, script: "Path") -> "None":
        env = dict(os.environ, USAGEBAR_CACHE_FILE=str(self.cache_file))
        try:
            proc = await asyncio.create_subprocess_exec(
                self._shell,
                str(script),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
                env=env,
            )
        except OSError as exc:
            # the cache may still hold a usable result from an earlier run
            logger.warning("helper_launch_failed", script=str(script), error=str(exc))
            return

        try:
            returncode = await asyncio.wait_for(proc.wait(), timeout=self._timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("helper_timeout", script=str(script), timeout=self._timeout)
            raise HelperError(
                f"Fetch helper did not finish within {self._timeout:g}s"
            ) from None

        if returncode != 0:
            # the helper reports its own failures through the cache file
            logger.warning("helper_failed", script=str(script), returncode=returncode)

    async def _read_cache(self) -> "UsageReading":
        try:
            raw = await asyncio.to_thread(self.cache_file.read_bytes)
        except FileNotFoundError:
            raise NoCacheFileError(
                f"No cache file. Run {HELPER_FILENAME} first."
            ) from None

        return parse_usage_response(raw)
