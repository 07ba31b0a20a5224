"""Client for the termhost REST API."""

from termhost.client.http import SessionClient, SessionClientError

__all__ = ["SessionClient", "SessionClientError"]
