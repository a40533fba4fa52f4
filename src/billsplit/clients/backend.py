"""Hosted backend client (profiles, auth and the receipt OCR function)."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from ..exceptions import BackendAPIError
from ..models import AuthSession, ParsedReceipt, User
from ..receipt import parse_receipt_payload

logger = logging.getLogger(__name__)


class BackendClient:
    """Client for the hosted backend's profile, auth and receipt OCR APIs.

    The ledger itself lives in the local database; the backend provides
    accounts, profiles and the OCR function, whose naira amounts are
    converted to kobo when the receipt is parsed.
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        access_token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the backend client."""
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.client = httpx.Client(
            base_url=self.base_url,
            headers={
                "apikey": anon_key,
                "Authorization": f"Bearer {access_token or anon_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def set_access_token(self, access_token: str | None):
        """Run subsequent requests as the given user (or anonymously)."""
        self.client.headers["Authorization"] = f"Bearer {access_token or self.anon_key}"

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request, translating HTTP failures into BackendAPIError."""
        try:
            response = self.client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Backend API error: {e}")
            logger.error(f"Response body: {e.response.text}")
            raise BackendAPIError(
                f"{method} {path} failed with {e.response.status_code}: "
                f"{e.response.text}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling {method} {path}: {e}")
            raise BackendAPIError(f"{method} {path} failed: {e}") from e
        return response

    def _select(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        response = self._request(
            "GET", f"/rest/v1/{table}", params={"select": "*", **params}
        )
        rows: list[dict[str, Any]] = response.json()
        return rows

    def _insert(
        self, table: str, rows: dict[str, Any] | list[dict[str, Any]], upsert: bool = False
    ) -> list[dict[str, Any]]:
        prefer = "return=representation"
        if upsert:
            prefer = "resolution=merge-duplicates," + prefer
        response = self._request(
            "POST", f"/rest/v1/{table}", json=rows, headers={"Prefer": prefer}
        )
        created: list[dict[str, Any]] = response.json()
        return created

    # ========================================================================
    # Auth
    # ========================================================================

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        """Sign in with email and password."""
        response = self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return _parse_session(response.json())

    def sign_up(
        self, email: str, password: str, full_name: str
    ) -> AuthSession | None:
        """
        Register a new account.

        Returns:
            The new session, or None when the backend requires email
            confirmation before the first sign-in
        """
        response = self._request(
            "POST",
            "/auth/v1/signup",
            json={
                "email": email,
                "password": password,
                "data": {"full_name": full_name},
            },
        )
        data = response.json()
        if not data.get("access_token"):
            logger.info(f"Sign-up for {email} is awaiting email confirmation")
            return None
        return _parse_session(data)

    def sign_out(self):
        """Revoke the current session."""
        self._request("POST", "/auth/v1/logout")
        self.set_access_token(None)

    # ========================================================================
    # Profiles
    # ========================================================================

    def get_profile(self, user_id: str) -> User | None:
        """Get a user profile, or None if the row does not exist."""
        rows = self._select("users", {"user_id": f"eq.{user_id}"})
        if not rows:
            return None
        return _row_to_user(rows[0])

    def upsert_profile(self, user: User) -> User:
        """Create or update a profile and return the stored row."""
        rows = self._insert(
            "users",
            {
                "user_id": user.user_id,
                "full_name": user.full_name,
                "payment_customer_id": user.payment_customer_id,
            },
            upsert=True,
        )
        return _row_to_user(rows[0])

    # ========================================================================
    # Functions
    # ========================================================================

    def process_receipt(self, image_url: str) -> ParsedReceipt:
        """Run OCR on an uploaded receipt image."""
        response = self._request(
            "POST", "/functions/v1/process-receipt", json={"image_url": image_url}
        )
        return parse_receipt_payload(response.json())


def _timestamp(row: dict[str, Any], key: str) -> dict[str, datetime]:
    """Pass a timestamp through only when the row has one."""
    value = row.get(key)
    return {key: datetime.fromisoformat(value)} if value else {}


def _parse_session(data: dict[str, Any]) -> AuthSession:
    user = data.get("user") or {}
    expires_in = data.get("expires_in")
    return AuthSession(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        user_id=user["id"],
        email=user.get("email"),
        expires_at=(
            datetime.now(UTC) + timedelta(seconds=int(expires_in))
            if expires_in
            else None
        ),
    )


def _row_to_user(row: dict[str, Any]) -> User:
    return User(
        user_id=row["user_id"],
        full_name=row.get("full_name") or "",
        payment_customer_id=row.get("payment_customer_id"),
        **_timestamp(row, "created_at"),
    )

