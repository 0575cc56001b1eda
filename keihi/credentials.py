"""Google service account credentials and API client construction."""

import json

from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account
from googleapiclient.discovery import build

from . import Config
from .errors import ConfigError


SCOPES = [
    'https://www.googleapis.com/auth/spreadsheets',
    'https://www.googleapis.com/auth/drive',
]

TOKEN_URI = "https://oauth2.googleapis.com/token"


def load_credentials(config: Config) -> service_account.Credentials:
    """Build service account credentials from the configuration.

    The client e-mail / private key pair takes precedence over a full
    service account JSON document.

    Raises:
        ConfigError: If the credentials can't be constructed
    """
    try:
        if config.google_client_email and config.google_private_key:
            info = {
                'type': 'service_account',
                'client_email': config.google_client_email,
                'private_key': config.google_private_key,
                'token_uri': TOKEN_URI,
            }
        elif config.google_service_account_json:
            info = json.loads(config.google_service_account_json)
        else:
            raise ConfigError("No Google service account credentials configured")
        return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
    except ConfigError:
        raise
    except (ValueError, KeyError) as e:
        raise ConfigError(f"Invalid Google service account credentials: {e}")


def build_sheets_service(creds):
    return build('sheets', 'v4', credentials=creds, cache_discovery=False)


def build_drive_service(creds):
    return build('drive', 'v3', credentials=creds, cache_discovery=False)


def build_http_session(creds) -> AuthorizedSession:
    """HTTP session used for endpoints without a discovery API (sheet PDF export)."""
    return AuthorizedSession(creds)
