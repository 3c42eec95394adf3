"""Thin Google Calendar v3 client over httpx.

The client is created once at process start (see ``heron_booking.main``) and
shared by every request; it holds one pooled ``httpx.Client`` and a cached
service-account access token.
"""

import json
import logging
import time
from threading import Lock
from urllib.parse import quote

import httpx
import jwt

from heron_booking.core import config

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
TOKEN_LIFETIME_SECONDS = 3600
TOKEN_REFRESH_MARGIN_SECONDS = 300


class CalendarAPIError(Exception):
    """Raised for transport failures, non-2xx or malformed answers from the calendar API."""


class ServiceAccountTokenProvider:
    """Exchanges a signed service-account assertion for an OAuth access token."""

    def __init__(
        self,
        service_account_info: dict | None,
        scope: str,
        http: httpx.Client,
        service_account_file: str = "",
    ):
        self.service_account_info = service_account_info
        self.service_account_file = service_account_file
        self.scope = scope
        self.http = http
        self._lock = Lock()
        self._access_token: str | None = None
        self._expires_at = 0.0

    @classmethod
    def from_file(cls, path: str, scope: str, http: httpx.Client) -> "ServiceAccountTokenProvider":
        """Defer reading the key file until the first token is needed."""
        return cls(None, scope, http, service_account_file=path)

    def _credentials(self) -> dict:
        if self.service_account_info is None:
            if not self.service_account_file:
                raise CalendarAPIError("GOOGLE_SERVICE_ACCOUNT_FILE is not configured.")
            try:
                with open(self.service_account_file, encoding="utf-8") as handle:
                    self.service_account_info = json.load(handle)
            except (OSError, ValueError) as exc:
                raise CalendarAPIError(f"Cannot read service account file: {exc}") from exc
        return self.service_account_info

    def get_token(self) -> str:
        with self._lock:
            if self._access_token and time.time() < self._expires_at - TOKEN_REFRESH_MARGIN_SECONDS:
                return self._access_token

            credentials = self._credentials()
            token_uri = credentials.get("token_uri", GOOGLE_TOKEN_URL)
            issued_at = int(time.time())
            try:
                assertion = jwt.encode(
                    {
                        "iss": credentials["client_email"],
                        "scope": self.scope,
                        "aud": token_uri,
                        "iat": issued_at,
                        "exp": issued_at + TOKEN_LIFETIME_SECONDS,
                    },
                    credentials["private_key"],
                    algorithm="RS256",
                )
            except (KeyError, ValueError, jwt.PyJWTError) as exc:
                raise CalendarAPIError(f"Cannot sign service account assertion: {exc}") from exc
            try:
                response = self.http.post(
                    token_uri,
                    data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                )
            except httpx.HTTPError as exc:
                raise CalendarAPIError(f"Token request failed: {exc}") from exc

            if response.status_code != 200:
                raise CalendarAPIError(f"Token request failed: {response.text}")

            try:
                payload = response.json()
                access_token = payload["access_token"]
                expires_at = issued_at + int(payload.get("expires_in", TOKEN_LIFETIME_SECONDS))
            except (ValueError, KeyError, TypeError, AttributeError) as exc:
                raise CalendarAPIError(f"Malformed token response: {response.text}") from exc
            self._access_token = access_token
            self._expires_at = expires_at
            logger.info("Google Calendar access token refreshed")
            return self._access_token


class GoogleCalendarClient:
    def __init__(self, http: httpx.Client, token_provider: ServiceAccountTokenProvider, base_url: str):
        self.http = http
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")

    def _request(self, method: str, path: str, **kwargs) -> dict:
        headers = {"Authorization": f"Bearer {self.token_provider.get_token()}"}
        try:
            response = self.http.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise CalendarAPIError(f"{method} {path} failed: {exc}") from exc

        if response.status_code not in (200, 201):
            raise CalendarAPIError(f"{method} {path} returned {response.status_code}: {response.text}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise CalendarAPIError(f"{method} {path} returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise CalendarAPIError(f"{method} {path} returned an unexpected body: {response.text}")
        return payload

    def freebusy(self, calendar_id: str, time_min: str, time_max: str) -> list[dict]:
        """Return the raw busy periods (``{"start", "end"}`` ISO strings) for one calendar."""
        payload = self._request(
            "POST",
            "/freeBusy",
            json={"timeMin": time_min, "timeMax": time_max, "items": [{"id": calendar_id}]},
        )
        calendar = payload.get("calendars", {}).get(calendar_id, {})
        if calendar.get("errors"):
            raise CalendarAPIError(f"Free/busy query for {calendar_id} failed: {calendar['errors']}")
        return calendar.get("busy", [])

    def insert_event(self, calendar_id: str, body: dict) -> dict:
        return self._request(
            "POST",
            f"/calendars/{quote(calendar_id, safe='')}/events",
            params={"sendUpdates": "none"},
            json=body,
        )

    def close(self) -> None:
        self.http.close()


def build_google_calendar_client() -> GoogleCalendarClient:
    http = httpx.Client(timeout=config.CALENDAR_HTTP_TIMEOUT_SECONDS)
    token_provider = ServiceAccountTokenProvider.from_file(
        config.GOOGLE_SERVICE_ACCOUNT_FILE,
        config.GOOGLE_CALENDAR_SCOPE,
        http,
    )
    return GoogleCalendarClient(http, token_provider, config.GOOGLE_CALENDAR_API_URL)
