"""
Unit tests for OAuth credential handling.
"""

import errno
import json
import pytest
from pathlib import Path
from unittest.mock import Mock, patch
from google.oauth2.credentials import Credentials
from google.auth.exceptions import RefreshError

from mailimport.auth import (
    ensure_valid_credentials,
    reauthorize_token,
    TokenExpiredError,
)

SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]


@pytest.fixture
def token_file(tmp_path):
    path = tmp_path / "gmail_token.json"
    path.write_text(json.dumps({
        "token": "stale",
        "refresh_token": "refresh-me",
        "token_uri": "https://oauth2.googleapis.com/token",
        "client_id": "cid",
        "client_secret": "secret",
        "scopes": SCOPES,
    }))
    return path


def _creds(valid=False, refresh_token="refresh-me"):
    creds = Mock(spec=Credentials)
    creds.valid = valid
    creds.expired = not valid
    creds.refresh_token = refresh_token
    creds.to_json.return_value = json.dumps({"token": "fresh", "refresh_token": refresh_token})
    return creds


class TestEnsureValidCredentials:
    """Test cases for ensure_valid_credentials."""

    def test_valid_credentials_returned_untouched(self, token_file):
        creds = _creds(valid=True)
        with patch("mailimport.auth.Credentials.from_authorized_user_file", return_value=creds):
            assert ensure_valid_credentials(str(token_file), SCOPES) is creds
        creds.refresh.assert_not_called()
        assert json.loads(token_file.read_text())["token"] == "stale"

    def test_expired_token_refreshed_and_saved(self, token_file):
        creds = _creds()
        with patch("mailimport.auth.Credentials.from_authorized_user_file", return_value=creds), \
             patch("google.auth.transport.requests.Request"):
            assert ensure_valid_credentials(str(token_file), SCOPES) is creds
        creds.refresh.assert_called_once()
        assert json.loads(token_file.read_text())["token"] == "fresh"

    def test_refresh_failure_raises_token_expired(self, token_file):
        creds = _creds()
        creds.refresh.side_effect = RefreshError("invalid_grant")
        with patch("mailimport.auth.Credentials.from_authorized_user_file", return_value=creds), \
             patch("google.auth.transport.requests.Request"):
            with pytest.raises(TokenExpiredError, match="Token refresh failed"):
                ensure_valid_credentials(str(token_file), SCOPES)

    def test_refresh_failure_reauthorizes_when_enabled(self, token_file):
        creds = _creds()
        creds.refresh.side_effect = RefreshError("invalid_grant")
        new_creds = _creds(valid=True)
        with patch("mailimport.auth.Credentials.from_authorized_user_file", return_value=creds), \
             patch("google.auth.transport.requests.Request"), \
             patch("mailimport.auth.reauthorize_token", return_value=new_creds) as reauth:
            assert ensure_valid_credentials(str(token_file), SCOPES, auto_reauthorize=True) is new_creds
        reauth.assert_called_once_with(str(token_file), SCOPES)

    def test_missing_refresh_token(self, token_file):
        with patch("mailimport.auth.Credentials.from_authorized_user_file", return_value=_creds(refresh_token=None)):
            with pytest.raises(TokenExpiredError, match="No refresh token"):
                ensure_valid_credentials(str(token_file), SCOPES)

    def test_missing_refresh_token_reauthorizes_when_enabled(self, token_file):
        new_creds = _creds(valid=True)
        with patch("mailimport.auth.Credentials.from_authorized_user_file", return_value=_creds(refresh_token=None)), \
             patch("mailimport.auth.reauthorize_token", return_value=new_creds):
            assert ensure_valid_credentials(str(token_file), SCOPES, auto_reauthorize=True) is new_creds

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Token file not found"):
            ensure_valid_credentials(str(tmp_path / "absent.json"), SCOPES)

    def test_missing_file_reauthorizes_when_enabled(self, tmp_path):
        new_creds = _creds(valid=True)
        with patch("mailimport.auth.reauthorize_token", return_value=new_creds) as reauth:
            assert ensure_valid_credentials(str(tmp_path / "absent.json"), SCOPES, auto_reauthorize=True) is new_creds
        reauth.assert_called_once()

    def test_read_only_token_file_keeps_refreshed_creds(self, token_file):
        creds = _creds()
        with patch("mailimport.auth.Credentials.from_authorized_user_file", return_value=creds), \
             patch("google.auth.transport.requests.Request"), \
             patch.object(Path, "write_text", side_effect=OSError(errno.EROFS, "Read-only file system")):
            assert ensure_valid_credentials(str(token_file), SCOPES) is creds


class TestReauthorizeToken:
    """Test cases for reauthorize_token."""

    def test_consent_flow_saves_token(self, tmp_path):
        token_path = tmp_path / "nested" / "token.json"
        secrets = tmp_path / "client_secret.json"
        secrets.write_text(json.dumps({"installed": {"client_id": "cid", "client_secret": "secret"}}))

        with patch("mailimport.auth.InstalledAppFlow") as flow_class:
            flow = flow_class.from_client_secrets_file.return_value
            new_creds = _creds(valid=True, refresh_token="brand-new")
            flow.run_local_server.return_value = new_creds

            result = reauthorize_token(str(token_path), SCOPES, client_secrets_path=str(secrets))

        assert result is new_creds
        flow_class.from_client_secrets_file.assert_called_once_with(str(secrets), SCOPES)
        assert json.loads(token_path.read_text())["refresh_token"] == "brand-new"

    def test_missing_client_secrets(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Client secrets file not found"):
            reauthorize_token(
                str(tmp_path / "token.json"),
                SCOPES,
                client_secrets_path=str(tmp_path / "absent.json"),
            )
