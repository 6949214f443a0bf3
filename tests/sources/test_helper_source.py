import asyncio
import json
import os
import stat
from pathlib import Path

import pytest

from usagebar.errors import HelperError, NoCacheFileError
from usagebar.sources.helper import (
    CACHE_FILENAME,
    DEFAULT_HELPER_SCRIPT,
    HELPER_FILENAME,
    HelperUsageSource,
)


def _write_script(path: "Path", body: "str") -> "Path":
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


def _source(claude_dir: "Path", script: "Path", timeout: "float" = 5.0) -> "HelperUsageSource":
    return HelperUsageSource(claude_dir, candidates=[script], timeout=timeout, shell="/bin/sh")


class TestHelperUsageSource:
    @pytest.mark.asyncio
    async def test_runs_helper_and_reads_cache(self, tmp_path: "Path") -> "None":
        payload = {
            "five_hour": {"utilization": 25.0, "resets_at": "2025-01-01T05:00:00Z"},
            "seven_day": {"utilization": 60.0},
            "fetched_at": "2025-01-01T00:00:00Z",
        }
        script = _write_script(
            tmp_path / "helper.sh",
            f"echo '{json.dumps(payload)}' > \"$USAGEBAR_CACHE_FILE\"\n",
        )

        reading = await _source(tmp_path, script).fetch()

        assert reading.five_hour is not None
        assert reading.five_hour.utilization == 25.0
        assert reading.seven_day is not None
        assert reading.seven_day.resets_at is None
        assert reading.fetched_at is not None
        assert (tmp_path / CACHE_FILENAME).exists()

    @pytest.mark.asyncio
    async def test_failing_helper_still_reads_error_cache(self, tmp_path: "Path") -> "None":
        script = _write_script(
            tmp_path / "helper.sh",
            "echo '{\"error\": \"Could not get token\"}' > \"$USAGEBAR_CACHE_FILE\"\n"
            "exit 1\n",
        )

        reading = await _source(tmp_path, script).fetch()

        assert reading.error == "Could not get token"

    @pytest.mark.asyncio
    async def test_missing_cache_file(self, tmp_path: "Path") -> "None":
        script = _write_script(tmp_path / "helper.sh", "exit 0\n")

        with pytest.raises(NoCacheFileError, match="No cache file"):
            await _source(tmp_path, script).fetch()

    @pytest.mark.asyncio
    async def test_stale_cache_used_when_launch_fails(self, tmp_path: "Path") -> "None":
        (tmp_path / CACHE_FILENAME).write_text('{"five_hour": {"utilization": 5}}')
        script = _write_script(tmp_path / "helper.sh", "exit 0\n")
        source = HelperUsageSource(
            tmp_path,
            candidates=[script],
            shell=str(tmp_path / "no-such-shell"),
        )

        reading = await source.fetch()

        assert reading.five_hour is not None
        assert reading.five_hour.utilization == 5.0

    @pytest.mark.asyncio
    async def test_hanging_helper_is_killed(self, tmp_path: "Path") -> "None":
        script = _write_script(tmp_path / "helper.sh", "exec sleep 5\n")

        with pytest.raises(HelperError, match="did not finish"):
            await _source(tmp_path, script, timeout=0.2).fetch()

    @pytest.mark.asyncio
    async def test_first_existing_candidate_wins(self, tmp_path: "Path") -> "None":
        missing = tmp_path / "missing.sh"
        present = _write_script(tmp_path / "present.sh", "exit 0\n")
        later = _write_script(tmp_path / "later.sh", "exit 0\n")
        source = HelperUsageSource(tmp_path, candidates=[missing, present, later])

        assert await source._locate_script() == present

    @pytest.mark.asyncio
    async def test_materializes_default_helper(self, tmp_path: "Path") -> "None":
        claude_dir = tmp_path / ".claude"
        source = HelperUsageSource(claude_dir, candidates=[tmp_path / "missing.sh"])

        script = await source._locate_script()

        assert script == claude_dir / HELPER_FILENAME
        assert script.read_text() == DEFAULT_HELPER_SCRIPT
        assert os.access(script, os.X_OK)
        assert stat.S_IMODE(script.stat().st_mode) == 0o755

    @pytest.mark.asyncio
    async def test_concurrent_materialization_leaves_complete_script(
        self, tmp_path: "Path"
    ) -> "None":
        claude_dir = tmp_path / ".claude"
        sources = [
            HelperUsageSource(claude_dir, candidates=[tmp_path / "missing.sh"])
            for _ in range(4)
        ]

        scripts = await asyncio.gather(*(s._locate_script() for s in sources))

        target = claude_dir / HELPER_FILENAME
        assert scripts == [target] * 4
        assert target.read_text() == DEFAULT_HELPER_SCRIPT
        assert stat.S_IMODE(target.stat().st_mode) == 0o755
        # no temp files left behind
        assert [p.name for p in claude_dir.iterdir()] == [HELPER_FILENAME]

    @pytest.mark.asyncio
    async def test_failed_materialization_cleans_up(
        self, tmp_path: "Path", monkeypatch: "pytest.MonkeyPatch"
    ) -> "None":
        claude_dir = tmp_path / ".claude"
        source = HelperUsageSource(claude_dir, candidates=[tmp_path / "missing.sh"])

        def _failing_replace(src: "str", dst: "str") -> "None":
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", _failing_replace)

        with pytest.raises(OSError, match="disk full"):
            await source._locate_script()

        assert list(claude_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_default_candidates_start_with_user_copy(self, tmp_path: "Path") -> "None":
        existing = _write_script(tmp_path / HELPER_FILENAME, "exit 0\n")
        source = HelperUsageSource(tmp_path)

        assert await source._locate_script() == existing

    def test_default_script_honours_cache_override(self) -> "None":
        assert DEFAULT_HELPER_SCRIPT.startswith("#!/bin/bash\n")
        assert "${USAGEBAR_CACHE_FILE:-$HOME/.claude/usage-cache.json}" in DEFAULT_HELPER_SCRIPT
        assert '"Claude Code-credentials" "Claude Safe Storage"' in DEFAULT_HELPER_SCRIPT
