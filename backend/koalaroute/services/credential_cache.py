"""Credential cache — single-flight OAuth2 bearer tokens per provider."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import httpx

from koalaroute.services.errors import AuthError

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 1799


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_at: datetime

    def is_fresh(self, margin: timedelta, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now < self.expires_at - margin

    def __repr__(self) -> str:
        return f"AccessToken(value='***', expires_at={self.expires_at.isoformat()})"


TokenExchange = Callable[[], Awaitable[AccessToken]]


class ClientCredentialsExchange:
    """Performs the OAuth2 client-credentials grant against a token endpoint."""

    def __init__(
        self,
        provider: str,
        token_url: str,
        client_id: str,
        client_secret: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.provider = provider
        self.token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._client = client
        self._timeout = timeout

    async def __call__(self) -> AccessToken:
        if not self._client_id or not self._client_secret:
            raise AuthError("client credentials are not configured", provider=self.provider, status_code=500)

        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        try:
            resp = await client.post(
                self.token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.RequestError as e:
            raise AuthError(f"token exchange failed: {e}", provider=self.provider, status_code=502) from e
        finally:
            if self._client is None:
                await client.aclose()

        if resp.status_code >= 400:
            raise AuthError(
                f"token exchange rejected with HTTP {resp.status_code}",
                provider=self.provider,
                status_code=resp.status_code,
                details={"body": resp.text[:500]},
            )

        try:
            data = resp.json()
            token = data["access_token"]
            expires_in = int(data.get("expires_in", DEFAULT_EXPIRES_IN))
        except (ValueError, KeyError, TypeError) as e:
            raise AuthError(f"malformed token response: {e}", provider=self.provider) from e

        return AccessToken(
            value=token,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        )


class CredentialCache:
    """Holds at most one bearer token per provider.

    Refreshes are single-flighted: while an exchange is in flight for a
    provider, every other caller awaits that same exchange. Failures are
    shared with all waiters and are not retried here.
    """

    def __init__(self, refresh_margin_seconds: int = 60):
        self._margin = timedelta(seconds=refresh_margin_seconds)
        self._exchanges: dict[str, TokenExchange] = {}
        self._tokens: dict[str, AccessToken] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    def register(self, provider_id: str, exchange: TokenExchange) -> None:
        self._exchanges[provider_id] = exchange

    def invalidate(self, provider_id: str) -> None:
        self._tokens.pop(provider_id, None)

    async def get_token(self, provider_id: str) -> AccessToken:
        token = self._tokens.get(provider_id)
        if token and token.is_fresh(self._margin):
            return token

        task = self._inflight.get(provider_id)
        if task is None:
            exchange = self._exchanges.get(provider_id)
            if exchange is None:
                raise AuthError("no token exchange registered", provider=provider_id, status_code=500)
            task = asyncio.ensure_future(self._refresh(provider_id, exchange))
            # Marks the exception retrieved even if every waiter was cancelled
            task.add_done_callback(lambda t: t.cancelled() or t.exception())
            self._inflight[provider_id] = task

        # Shielded so one cancelled waiter does not abort the shared exchange
        return await asyncio.shield(task)

    async def _refresh(self, provider_id: str, exchange: TokenExchange) -> AccessToken:
        try:
            token = await exchange()
            self._tokens[provider_id] = token
            logger.info(f"{provider_id} token refreshed, expires {token.expires_at.isoformat()}")
            return token
        except AuthError:
            logger.error(f"{provider_id} token exchange failed")
            raise
        except Exception as e:
            logger.error(f"{provider_id} token exchange failed: {e}")
            raise AuthError(f"token exchange failed: {e}", provider=provider_id) from e
        finally:
            self._inflight.pop(provider_id, None)
