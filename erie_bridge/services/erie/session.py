"""
Erie Connect Session Manager

Owns the vendor auth tokens and exposes a single authenticated GET.

States:
- Unauthenticated: no tokens held (startup, or after any 401)
- Authenticated: tokens from the last successful sign-in

A 401 clears the tokens, signs in again and retries the request exactly
once. Other failures are logged and resolve to an empty dict.
"""

from dataclasses import dataclass
from typing import Any

import httpx

from erie_bridge.common.config import ERIE_API_BASE_URL, DEFAULT_REQUEST_TIMEOUT_S
from erie_bridge.common.exceptions import AuthError
from erie_bridge.common.logging_setup import get_service_logger

logger = get_service_logger("erie.session")

LOGIN_PATH = "/auth/sign_in"
DEVICE_LIST_PATH = "/water_softeners"


def device_info_path(device_id: str) -> str:
    return f"/water_softeners/{device_id}/info"


@dataclass(frozen=True)
class SessionTokens:
    """Devise-style auth headers returned by sign-in"""
    access_token: str
    client: str | None
    expiry: str | None
    uid: str | None
    token_type: str = "Bearer"

    @classmethod
    def from_headers(cls, headers: httpx.Headers) -> "SessionTokens | None":
        access_token = headers.get("access-token")
        if not access_token:
            return None
        return cls(
            access_token=access_token,
            client=headers.get("client"),
            expiry=headers.get("expiry"),
            uid=headers.get("uid"),
            token_type=headers.get("token-type") or "Bearer",
        )

    def as_headers(self) -> dict[str, str]:
        headers = {
            "Access-Token": self.access_token,
            "Token-Type": self.token_type,
        }
        if self.client:
            headers["Client"] = self.client
        if self.expiry:
            headers["Expiry"] = self.expiry
        if self.uid:
            headers["Uid"] = self.uid
        return headers


class SessionManager:
    """
    Authenticated access to the Erie Connect API.

    Reuses a single httpx.AsyncClient. `transport` lets tests plug in an
    httpx.MockTransport.
    """

    def __init__(
        self,
        email: str,
        password: str,
        base_url: str = ERIE_API_BASE_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.email = email
        self._password = password
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

        self._tokens: SessionTokens | None = None
        self._client: httpx.AsyncClient | None = None

        self.login_count = 0
        self.request_count = 0

    @property
    def is_authenticated(self) -> bool:
        return self._tokens is not None

    @property
    def tokens(self) -> SessionTokens | None:
        return self._tokens

    def invalidate(self) -> None:
        """Drop the current session (Authenticated -> Unauthenticated)."""
        self._tokens = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create reusable HTTP client"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client"""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def login(self) -> SessionTokens:
        """
        Sign in with the account credentials.

        Returns:
            The new session tokens

        Raises:
            AuthError: transport failure, non-2xx status or no access token
        """
        logger.info("ErieConnect - Login start.")
        self.login_count += 1
        self._tokens = None

        client = await self._get_client()
        try:
            response = await client.post(
                LOGIN_PATH,
                json={"email": self.email, "password": self._password},
            )
        except httpx.HTTPError as e:
            logger.error(f"ErieConnect - Login request failed: {e}")
            raise AuthError(f"Login request failed: {e}") from e

        if response.is_error:
            logger.error(
                f"ErieConnect - Login rejected with status {response.status_code}",
                extra={"status_code": response.status_code},
            )
            raise AuthError("Login rejected", status_code=response.status_code)

        tokens = SessionTokens.from_headers(response.headers)
        if tokens is None:
            logger.error("ErieConnect - Login response carried no access token")
            raise AuthError("No access token in login response", status_code=response.status_code)

        self._tokens = tokens
        logger.info("ErieConnect - User logged in.")
        return tokens

    async def _send(self, path: str) -> httpx.Response | None:
        """GET with current tokens; None on transport failure"""
        client = await self._get_client()
        headers = self._tokens.as_headers() if self._tokens else {}
        self.request_count += 1
        try:
            return await client.get(path, headers=headers)
        except httpx.HTTPError as e:
            logger.error(
                f"ErieConnect - Request failed: {e}",
                extra={"path": path},
            )
            return None

    async def request(self, path: str) -> Any:
        """
        Authenticated GET of `path`, returning the decoded JSON body.

        Signs in first when no session is held. On 401 signs in again and
        retries once.

        Returns:
            Decoded body, or {} when the call failed for any reason other
            than a login failure

        Raises:
            AuthError: sign-in failed
        """
        if self._tokens is None:
            await self.login()

        response = await self._send(path)
        if response is None:
            return {}

        if response.status_code == 401:
            logger.info("No active session. Login retry.", extra={"path": path})
            self.invalidate()
            await self.login()

            response = await self._send(path)
            if response is None:
                return {}

            if response.status_code == 401:
                self.invalidate()
                logger.error(
                    "ErieConnect - Still unauthorized after re-login",
                    extra={"path": path, "status_code": 401},
                )
                return {}

        if response.is_error:
            logger.error(
                f"Error response: path={path} statusCode={response.status_code}",
                extra={"path": path, "status_code": response.status_code},
            )
            return {}

        try:
            return response.json()
        except ValueError as e:
            logger.error(
                f"ErieConnect - Response is not JSON: {e}",
                extra={"path": path},
            )
            return {}
