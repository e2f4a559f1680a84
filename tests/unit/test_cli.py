"""Unit tests for the command-line interface."""

from unittest.mock import patch

import pytest
import respx
from typer.testing import CliRunner

from appkeyid.cli import app
from appkeyid.config import reset_settings
from appkeyid.upload_urls import UPLOAD_URL_PATH
from conftest import BACKEND, STORAGE

runner = CliRunner()


@pytest.fixture(autouse=True)
def backend_env(monkeypatch):
    monkeypatch.setenv("APPKEYID_REST_ADDRESS", BACKEND)
    reset_settings()


class TestChallengeCommand:
    """Tests for the challenge command."""

    def test_prints_challenge(self):
        with respx.mock:
            route = respx.post(f"{BACKEND}/api/authn/login").respond(
                200,
                json={
                    "rpId": "appkey.io",
                    "challenge": "abc",
                    "timeout": 60000,
                    "userVerification": "preferred",
                },
            )
            result = runner.invoke(app, ["challenge", "ada@example.com"])

        assert result.exit_code == 0
        assert '"challenge": "abc"' in result.stdout
        assert route.called

    def test_server_error_exits_nonzero(self):
        with respx.mock:
            respx.post(f"{BACKEND}/api/authn/login").respond(
                200, json={"status": False, "message": "User not found"}
            )
            result = runner.invoke(app, ["challenge", "ghost@example.com"])

        assert result.exit_code == 1

    def test_add_passkey_rejected(self):
        result = runner.invoke(app, ["challenge", "ada@example.com", "--kind", "add_passkey"])

        assert result.exit_code == 1


class TestUploadCommand:
    """Tests for the upload command."""

    def test_upload(self, tmp_path):
        path = tmp_path / "photo.png"
        path.write_bytes(b"\x89PNG" * 10)

        with respx.mock:
            respx.post(f"{BACKEND}{UPLOAD_URL_PATH}").respond(
                200,
                json={
                    "id": "asset-1",
                    "writeUrl": f"{STORAGE}/photo.png?sig=1",
                    "readUrl": f"{STORAGE}/photo.png",
                    "path": "asset-1/photo.png",
                },
            )
            storage = respx.put(f"{STORAGE}/photo.png").respond(201)
            result = runner.invoke(
                app,
                ["upload", str(path), "--access-token", "tok", "--asset-id", "asset-1"],
            )

        assert result.exit_code == 0
        assert "Uploaded" in result.stdout
        assert storage.calls.last.request.headers["x-ms-blob-type"] == "BlockBlob"

    def test_upload_rejected_by_backend(self, tmp_path):
        path = tmp_path / "photo.png"
        path.write_bytes(b"\x89PNG")

        with respx.mock:
            respx.post(f"{BACKEND}{UPLOAD_URL_PATH}").respond(401, json={"message": "Expired"})
            result = runner.invoke(app, ["upload", str(path), "--access-token", "tok"])

        assert result.exit_code == 1


class TestScanCommand:
    """Tests for the scan command."""

    def test_scan(self):
        url = f"{BACKEND}/api/appkeyid/scan/abc"
        with respx.mock:
            route = respx.get(url).respond(200, json={"status": True})
            result = runner.invoke(app, ["scan", url, "--access-token", "tok"])

        assert result.exit_code == 0
        assert route.calls.last.request.headers["access-token"] == "tok"

    def test_scan_foreign_url(self):
        result = runner.invoke(app, ["scan", "https://example.com/x", "--access-token", "tok"])

        assert result.exit_code == 1


class TestVerboseFlag:
    """Tests for the global --verbose option."""

    def test_logging_configured_only_when_verbose(self):
        args = ["scan", "https://example.com/x", "--access-token", "tok"]

        with patch("appkeyid.cli.logging.basicConfig") as basic_config:
            runner.invoke(app, args)
            basic_config.assert_not_called()

            runner.invoke(app, ["--verbose", *args])
            basic_config.assert_called_once()
            assert basic_config.call_args.kwargs["level"] == "INFO"
