"""100ms Video Platform Integration Client.

Handles room creation, management token generation for server-to-server
communication with the 100ms REST API, per-participant access tokens for
joining a class room, recording start, and verification of the signed
webhooks 100ms sends when a recording is ready.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import hashlib
import hmac
import json
import logging
import time
from typing import Any, Iterable, cast
import uuid

import httpx
import jwt
from pydantic import SecretStr

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-hundredms-signature"


class HundredMsError(RuntimeError):
    """Raised when the 100ms API responds with an error."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        *,
        details: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


@dataclass(frozen=True)
class VideoAccessGrant:
    """Room-scoped credential handed to a participant's video SDK."""

    token: str
    room_id: str
    room_name: str
    role: str
    expires_in_seconds: int
    grants: tuple[str, ...] = field(default=("publish", "subscribe"))


def _unwrap(secret: str | SecretStr | None) -> str:
    if secret is None:
        return ""
    return secret.get_secret_value() if isinstance(secret, SecretStr) else secret


def compute_webhook_signature(raw_body: bytes, secret: str | SecretStr) -> str:
    """Hex HMAC-SHA256 of the raw request body."""
    return hmac.new(_unwrap(secret).encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_webhook_signature(
    raw_body: bytes, provided_signature: str | None, secret: str | SecretStr | None
) -> bool:
    """
    Check a recording webhook signature.

    Accepts a bare hex digest or one prefixed with ``sha256=``. An empty
    secret never verifies.
    """
    secret_value = _unwrap(secret)
    if not secret_value or not provided_signature:
        return False
    candidate = provided_signature.strip()
    if candidate.startswith("sha256="):
        candidate = candidate[len("sha256=") :]
    expected = compute_webhook_signature(raw_body, secret_value)
    return hmac.compare_digest(candidate.lower(), expected)


class HundredMsClient:
    """HTTP client for 100ms REST API."""

    def __init__(
        self,
        *,
        access_key: str,
        app_secret: str | SecretStr,
        base_url: str = "https://api.100ms.live/v2",
        template_id: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._access_key = access_key
        self._app_secret = _unwrap(app_secret)
        self._base_url = base_url.rstrip("/")
        self._template_id = template_id
        self._timeout = timeout
        self._mgmt_token: str | None = None
        self._mgmt_token_refresh_at: float = 0.0

    def _generate_management_token(self) -> str:
        """Generate a management token for server-to-server API calls.

        This is a JWT signed with HS256 using our app_secret.
        Used in Authorization header for 100ms REST API requests.
        """
        now = int(time.time())
        payload = {
            "access_key": self._access_key,
            "type": "management",
            "version": 2,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "nbf": now,
            "exp": now + 3600,
        }
        token: str = jwt.encode(
            payload,
            self._app_secret,
            algorithm="HS256",
            headers={"alg": "HS256", "typ": "JWT"},
        )
        return token

    def _get_management_token(self) -> str:
        """Return a cached management token, refreshing before expiry."""
        now = time.monotonic()
        if self._mgmt_token is None or now >= self._mgmt_token_refresh_at:
            self._mgmt_token = self._generate_management_token()
            # Token lifetime is 60 minutes; rotate after 50.
            self._mgmt_token_refresh_at = now + (50 * 60)
        return self._mgmt_token

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request to the 100ms API."""
        url = f"{self._base_url}/{path.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {self._get_management_token()}",
            "Content-Type": "application/json",
        }

        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.request(method, url, headers=headers, json=json_body)
        except httpx.TransportError as exc:
            logger.error("100ms API unreachable for %s %s: %s", method, path, exc)
            raise HundredMsError(message=f"100ms API unreachable: {exc}") from exc

        if response.status_code >= 400:
            error_body: dict[str, Any] = {}
            try:
                parsed_body = response.json()
                error_body = parsed_body if isinstance(parsed_body, dict) else {}
            except ValueError:
                error_body = {"raw": response.text[:500]}

            message = error_body.get("message") or error_body.get("description") or response.text
            logger.error(
                "100ms API error %s for %s %s: %s",
                response.status_code,
                method,
                path,
                response.text[:500],
            )
            raise HundredMsError(
                message=message,
                status_code=response.status_code,
                details=error_body.get("details"),
            )

        return cast(dict[str, Any], response.json())

    # ── High-level API methods ──────────────────────────────────────────

    def create_room(self, *, name: str, description: str | None = None) -> dict[str, Any]:
        """Create a 100ms room.

        If a room with the same name already exists, 100ms returns the existing
        room. Room name = booking id, so repeated joins reuse one room.
        """
        body: dict[str, Any] = {"name": name}
        if self._template_id:
            body["template_id"] = self._template_id
        if description:
            body["description"] = description
        return self._request("POST", "rooms", json_body=body)

    def _generate_auth_token(
        self,
        *,
        room_id: str,
        user_id: str,
        role: str,
        validity_seconds: int,
        grants: Iterable[str],
    ) -> str:
        now = int(time.time())
        payload = {
            "access_key": self._access_key,
            "room_id": room_id,
            "user_id": user_id,
            "role": role,
            "type": "app",
            "version": 2,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "nbf": now,
            "exp": now + validity_seconds,
            "metadata": json.dumps({"user_id": user_id, "grants": sorted(grants)}),
        }
        token: str = jwt.encode(
            payload,
            self._app_secret,
            algorithm="HS256",
            headers={"alg": "HS256", "typ": "JWT"},
        )
        return token

    def mint_access_token(
        self,
        *,
        identity: str,
        room_name: str,
        role: str,
        ttl_seconds: int,
        grants: Iterable[str] = ("publish", "subscribe"),
    ) -> VideoAccessGrant:
        """Ensure the room exists and mint a token scoped to it."""
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        grant_list = tuple(grants)
        room = self.create_room(name=room_name)
        room_id = str(room.get("id") or "")
        if not room_id:
            raise HundredMsError("100ms room response missing id", details=room)
        token = self._generate_auth_token(
            room_id=room_id,
            user_id=identity,
            role=role,
            validity_seconds=ttl_seconds,
            grants=grant_list,
        )
        return VideoAccessGrant(
            token=token,
            room_id=room_id,
            room_name=room_name,
            role=role,
            expires_in_seconds=ttl_seconds,
            grants=grant_list,
        )

    def start_recording(self, *, room_name: str) -> str:
        """Start cloud recording for the room and return the recording session id."""
        room = self.create_room(name=room_name)
        room_id = str(room.get("id") or "")
        if not room_id:
            raise HundredMsError("100ms room response missing id", details=room)
        result = self._request("POST", f"recordings/room/{room_id}/start", json_body={})
        session_ref = result.get("id") or result.get("session_id")
        if not session_ref:
            raise HundredMsError("100ms recording response missing id", details=result)
        return str(session_ref)


class FakeHundredMsClient:
    """In-memory stub for testing/non-production environments."""

    def __init__(self, **kwargs: Any) -> None:
        self._calls: list[dict[str, Any]] = []
        self._errors: dict[str, HundredMsError] = {}
        self._recordings: dict[str, str] = {}

    def set_error(self, method: str, error: HundredMsError) -> None:
        """Inject a method-specific error for deterministic failure testing."""
        self._errors[method] = error

    def clear_errors(self) -> None:
        """Reset all injected fake-client errors."""
        self._errors.clear()

    def calls_for(self, method: str) -> list[dict[str, Any]]:
        return [call for call in self._calls if call["method"] == method]

    def _raise_if_injected(self, method: str) -> None:
        error = self._errors.get(method)
        if error is not None:
            raise error

    def mint_access_token(
        self,
        *,
        identity: str,
        room_name: str,
        role: str,
        ttl_seconds: int,
        grants: Iterable[str] = ("publish", "subscribe"),
    ) -> VideoAccessGrant:
        grant_list = tuple(grants)
        self._calls.append(
            {
                "method": "mint_access_token",
                "identity": identity,
                "room_name": room_name,
                "role": role,
                "ttl_seconds": ttl_seconds,
                "grants": grant_list,
            }
        )
        self._raise_if_injected("mint_access_token")
        return VideoAccessGrant(
            token=f"fake_video_token_{room_name}_{identity}",
            room_id=f"fake_room_{room_name}",
            room_name=room_name,
            role=role,
            expires_in_seconds=ttl_seconds,
            grants=grant_list,
        )

    def start_recording(self, *, room_name: str) -> str:
        self._calls.append({"method": "start_recording", "room_name": room_name})
        self._raise_if_injected("start_recording")
        session_ref = f"fake_recording_{uuid.uuid4().hex[:12]}"
        self._recordings[room_name] = session_ref
        return session_ref
