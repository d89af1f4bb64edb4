"""
Caller authentication for the print endpoint.

Only "is authenticated" is checked; there is no role check on printing.
"""

import hmac
import logging
from typing import Callable, Iterable

import httpx

logger = logging.getLogger('ticket.bridge.auth')


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


class Authenticator:
    """Resolves a bearer token to a user via the backend auth service."""

    def __init__(
        self,
        backend_url: str = '',
        api_key: str = '',
        static_tokens: Iterable[str] = (),
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
        timeout: float = 5.0,
    ):
        self._user_url = f"{backend_url.rstrip('/')}/auth/v1/user" if backend_url else None
        self._api_key = api_key
        self._static_tokens = [t for t in static_tokens if t]
        self._client_factory = client_factory or (lambda: httpx.AsyncClient(timeout=timeout))

    async def verify(self, authorization: str | None) -> dict | None:
        token = bearer_token(authorization)
        if token is None:
            return None

        for known in self._static_tokens:
            if hmac.compare_digest(token, known):
                return {'id': 'api-token'}

        if self._user_url is None:
            return None

        try:
            async with self._client_factory() as client:
                response = await client.get(
                    self._user_url,
                    headers={'apikey': self._api_key, 'Authorization': f"Bearer {token}"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Auth service unreachable: {e}")
            return None

        if response.status_code != 200:
            logger.info(f"Print authentication failed: HTTP {response.status_code}")
            return None
        try:
            user = response.json()
        except ValueError:
            logger.error("Auth service returned a non-JSON user record")
            return None
        if not isinstance(user, dict) or not user.get('id'):
            return None
        return user
