import json
from pathlib import Path

import pytest

from usagebar.credentials import file as file_module
from usagebar.credentials.base import ChainedCredentialSource
from usagebar.credentials.file import FileCredentialSource, default_credential_source


class TestFileCredentialSource:
    @pytest.mark.asyncio
    async def test_reads_token(self, tmp_path: "Path") -> "None":
        path = tmp_path / ".credentials.json"
        path.write_text(json.dumps({"claudeAiOauth": {"accessToken": "file-token"}}))

        source = FileCredentialSource(path)
        assert await source.get_token() == "file-token"

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: "Path") -> "None":
        source = FileCredentialSource(tmp_path / "missing.json")
        assert await source.get_token() is None

    @pytest.mark.asyncio
    async def test_malformed_file(self, tmp_path: "Path") -> "None":
        path = tmp_path / ".credentials.json"
        path.write_text("{not json")
        assert await FileCredentialSource(path).get_token() is None


class TestDefaultCredentialSource:
    def test_macos_chains_keychain_and_file(
        self, tmp_path: "Path", monkeypatch: "pytest.MonkeyPatch"
    ) -> "None":
        monkeypatch.setattr(file_module.sys, "platform", "darwin")
        source = default_credential_source(tmp_path)
        assert isinstance(source, ChainedCredentialSource)
        assert source.name == "keychain+file"

    def test_elsewhere_uses_file(
        self, tmp_path: "Path", monkeypatch: "pytest.MonkeyPatch"
    ) -> "None":
        monkeypatch.setattr(file_module.sys, "platform", "linux")
        source = default_credential_source(tmp_path)
        assert isinstance(source, FileCredentialSource)
