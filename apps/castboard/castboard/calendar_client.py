"""
Google Calendar client

Thin wrapper over the Calendar v3 REST API. Authenticates with a service
account; every provider failure surfaces as ExternalServiceError.
"""
from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from castboard.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar"]
SERVICE = "google-calendar"


def load_service_account(email: Optional[str], private_key: Optional[str]):
    """Build service account credentials from env-style values.

    Returns None when either value is missing. Keys pasted into env files
    often carry literal "\\n" sequences; those are turned back into newlines.
    """
    if not email or not private_key:
        return None
    info = {
        "type": "service_account",
        "client_email": email,
        "private_key": private_key.replace("\\n", "\n"),
        "token_uri": GOOGLE_TOKEN_URL,
    }
    return service_account.Credentials.from_service_account_info(info, scopes=CALENDAR_SCOPES)


class GoogleCalendarClient:
    def __init__(self, credentials, http: Optional[httpx.Client] = None, base_url: str = GOOGLE_CALENDAR_API):
        self.credentials = credentials
        self.http = http or httpx.Client(timeout=30.0)
        self.base_url = base_url.rstrip("/")

    def close(self) -> None:
        self.http.close()

    def _access_token(self) -> str:
        if not self.credentials.valid:
            try:
                self.credentials.refresh(GoogleAuthRequest())
            except GoogleAuthError as e:
                raise ExternalServiceError(SERVICE, f"token refresh failed: {e}") from e
        return self.credentials.token

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
        allow_missing: bool = False,
    ) -> Optional[dict[str, Any]]:
        headers = {"Authorization": f"Bearer {self._access_token()}"}
        try:
            response = self.http.request(
                method,
                f"{self.base_url}{path}",
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise ExternalServiceError(SERVICE, f"{method} {path} failed: {e}") from e

        if allow_missing and response.status_code in (404, 410):
            logger.info(f"Calendar resource already gone: {path}")
            return None
        if response.status_code >= 400:
            raise ExternalServiceError(
                SERVICE,
                f"{method} {path} returned {response.status_code}: {response.text[:200]}",
                status=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _events_path(calendar_id: str, event_id: Optional[str] = None) -> str:
        path = f"/calendars/{quote(calendar_id, safe='')}/events"
        if event_id:
            path += f"/{quote(event_id, safe='')}"
        return path

    def insert_event(self, calendar_id: str, body: dict, send_updates: str = "none") -> str:
        data = self._request(
            "POST",
            self._events_path(calendar_id),
            params={"sendUpdates": send_updates},
            json=body,
        )
        event_id = (data or {}).get("id")
        if not event_id:
            raise ExternalServiceError(SERVICE, "insert returned no event id")
        return event_id

    def patch_event(self, calendar_id: str, event_id: str, body: dict) -> None:
        self._request(
            "PATCH",
            self._events_path(calendar_id, event_id),
            params={"sendUpdates": "none"},
            json=body,
        )

    def delete_event(self, calendar_id: str, event_id: str, send_updates: str = "none") -> None:
        self._request(
            "DELETE",
            self._events_path(calendar_id, event_id),
            params={"sendUpdates": send_updates},
            allow_missing=True,
        )

    def insert_calendar(self, summary: str, time_zone: str) -> str:
        data = self._request("POST", "/calendars", json={"summary": summary, "timeZone": time_zone})
        calendar_id = (data or {}).get("id")
        if not calendar_id:
            raise ExternalServiceError(SERVICE, "calendar insert returned no id")
        return calendar_id

    def share_calendar(self, calendar_id: str, email: str, role: str = "reader") -> None:
        self._request(
            "POST",
            f"/calendars/{quote(calendar_id, safe='')}/acl",
            json={"role": role, "scope": {"type": "user", "value": email}},
        )
