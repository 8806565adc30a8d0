"""Turn raw credential JSON into scoped Google credentials."""

import json

import google.auth
from google.auth import exceptions as auth_exceptions
from google.auth.credentials import Credentials

PUBSUB_SCOPE = "https://www.googleapis.com/auth/pubsub"


class CredentialsError(Exception):
    """Credential material for one side of the relay is unusable."""

    def __init__(self, side: str, reason: str) -> None:
        self.side = side
        self.reason = reason
        super().__init__(f"Could not load {side} credentials: {reason}")


def resolve_credentials(raw: str, side: str, scopes: list[str] | None = None) -> Credentials:
    """
    Build credentials from a JSON blob.

    Any credential type google-auth understands is accepted (service
    account, authorized user, external account).

    Args:
        raw: The credential JSON as given in configuration
        side: "source" or "destination", used in error messages
        scopes: OAuth scopes to request (defaults to Pub/Sub)

    Returns:
        Credentials ready to pass to a Pub/Sub client

    Raises:
        CredentialsError: If the blob is empty, not JSON, not an object, or
            not credential material google-auth can load
    """
    if not raw or not raw.strip():
        raise CredentialsError(side, "credentials JSON is empty")

    try:
        info = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CredentialsError(side, f"invalid JSON: {e}") from e

    if not isinstance(info, dict):
        raise CredentialsError(side, "credentials JSON must be an object")

    try:
        credentials, _ = google.auth.load_credentials_from_dict(
            info, scopes=scopes or [PUBSUB_SCOPE]
        )
    except (auth_exceptions.DefaultCredentialsError, ValueError) as e:
        raise CredentialsError(side, str(e)) from e

    return credentials
