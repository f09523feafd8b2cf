"""
OAuth credentials for the Gmail and Sheets APIs.

Tokens are authorized-user JSON files. Expired tokens are refreshed and
written back; tokens that cannot be refreshed either trigger the browser
consent flow (AUTO_REAUTHORIZE) or raise TokenExpiredError.
"""

from __future__ import annotations
import errno
import os
from pathlib import Path
from typing import Optional

from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from mailimport.exceptions import TokenExpiredError
from mailimport.logging import logger

__all__ = ["TokenExpiredError", "reauthorize_token", "ensure_valid_credentials"]

_REAUTH_HINT = "Run 'mail-import authorize' to re-authorize."


def _save_token(token_file: Path, creds: Credentials) -> None:
    try:
        token_file.write_text(creds.to_json(), encoding="utf-8")
    except OSError as e:
        if e.errno != errno.EROFS:
            raise
        logger.warning(
            f"Credentials refreshed but {token_file} is on a read-only file system; "
            f"the refreshed token is kept in memory only"
        )


def reauthorize_token(
    token_path: str,
    scopes: list[str],
    client_secrets_path: Optional[str] = None,
) -> Credentials:
    """
    Run the installed-app consent flow and save the new token.

    Args:
        token_path: Where to write the token file
        scopes: OAuth scopes to request
        client_secrets_path: OAuth client file. Defaults to GOOGLE_CLIENT_SECRETS
            or ./credentials/client_secret.json.

    Raises:
        FileNotFoundError: If the client secrets file doesn't exist
    """
    secrets = Path(client_secrets_path or os.getenv("GOOGLE_CLIENT_SECRETS", "./credentials/client_secret.json"))
    if not secrets.exists():
        raise FileNotFoundError(
            f"Client secrets file not found: {secrets}. "
            f"Set GOOGLE_CLIENT_SECRETS or place client_secret.json in credentials/"
        )

    token_file = Path(token_path)
    token_file.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"Starting OAuth consent flow for {token_path}; a browser window will open")

    flow = InstalledAppFlow.from_client_secrets_file(str(secrets), scopes)
    creds = flow.run_local_server(port=0)
    if not creds.refresh_token:
        logger.warning(
            "No refresh token received; revoke the app at https://myaccount.google.com/permissions "
            "and authorize again to get one"
        )
    _save_token(token_file, creds)
    logger.info(f"Token saved to {token_path}")
    return creds


def ensure_valid_credentials(
    token_path: str,
    scopes: list[str],
    auto_reauthorize: bool = False,
) -> Credentials:
    """
    Load credentials and refresh them if needed.

    Args:
        token_path: Path to the token JSON file
        scopes: OAuth scopes required
        auto_reauthorize: Start the consent flow instead of raising when the
            token is missing or cannot be refreshed

    Raises:
        FileNotFoundError: If the token file doesn't exist and auto_reauthorize is False
        TokenExpiredError: If the token cannot be refreshed and auto_reauthorize is False
    """
    token_file = Path(token_path)
    if not token_file.exists():
        if auto_reauthorize:
            logger.warning(f"Token file not found: {token_path}; starting re-authorization")
            return reauthorize_token(token_path, scopes)
        raise FileNotFoundError(f"Token file not found: {token_path}")

    creds = Credentials.from_authorized_user_file(str(token_file), scopes)
    if creds.valid:
        return creds

    if not creds.refresh_token:
        logger.warning(f"No refresh token in {token_path}")
        if auto_reauthorize:
            return reauthorize_token(token_path, scopes)
        raise TokenExpiredError(f"No refresh token for {token_path}. {_REAUTH_HINT}")

    from google.auth.transport.requests import Request
    try:
        creds.refresh(Request())
    except RefreshError as e:
        logger.error(f"Token refresh failed for {token_path}: {e}")
        if auto_reauthorize:
            return reauthorize_token(token_path, scopes)
        raise TokenExpiredError(f"Token refresh failed for {token_path}. {_REAUTH_HINT}") from e

    _save_token(token_file, creds)
    logger.debug(f"Credentials refreshed for {token_path}")
    return creds
