"""Google Calendar REST backend over httpx.

Two credential kinds are accepted:

- ``service_account`` key JSON.  Access tokens are minted by google-auth;
  its refresh call is blocking, so it runs in a worker thread.
- ``authorized_user`` (or installed/web client) JSON carrying a refresh
  token, exchanged directly against the OAuth token endpoint.

Requests retry once on 401 with a forced token refresh, and back off on
429/503 (honouring ``Retry-After``) before giving up.
"""

from __future__ import annotations

import abc
import asyncio
import json
import logging
from datetime import UTC, date, datetime, timedelta, tzinfo
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account
from pydantic import ValidationError

from calendar_agent import timeparse
from calendar_agent.calendar.base import (
    CalendarBackend,
    CalendarBackendError,
    CalendarCredentialError,
    CalendarEvent,
    CalendarInfo,
    CalendarNotFoundError,
    CalendarRequestError,
    CalendarTokenRefreshError,
    EventStatus,
)

logger = logging.getLogger(__name__)

GOOGLE_OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"
CALENDAR_READONLY_SCOPE = "https://www.googleapis.com/auth/calendar.readonly"

RATE_LIMIT_RETRY_STATUS_CODES = {429, 503}
RATE_LIMIT_MAX_RETRIES = 3
RATE_LIMIT_BASE_BACKOFF_SECONDS = 1.0

MAX_LIST_RESULTS = 250


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


def load_credential_info(source: tuple[str, str]) -> dict[str, Any]:
    """Decode the credential JSON named by ``AgentConfig.google_credentials_source()``.

    Parameters
    ----------
    source:
        ``("json", raw_json)`` or ``("file", path)``.

    Raises
    ------
    CalendarCredentialError
        If the file cannot be read or the payload is not a JSON object.
    """
    kind, value = source
    if kind == "file":
        try:
            raw_value = Path(value).read_text(encoding="utf-8")
        except OSError as exc:
            raise CalendarCredentialError(
                f"Unable to read credentials file {value}: {exc.strerror}"
            ) from exc
    else:
        raw_value = value

    try:
        payload = json.loads(raw_value)
    except json.JSONDecodeError as exc:
        raise CalendarCredentialError(f"Credential JSON must be valid JSON: {exc.msg}") from exc

    if not isinstance(payload, dict):
        raise CalendarCredentialError("Credential JSON must decode to a JSON object")
    return payload


def _extract_google_credential_value(payload: dict[str, Any], key: str) -> Any:
    if key in payload:
        return payload[key]

    for nested_key in ("installed", "web"):
        nested = payload.get(nested_key)
        if isinstance(nested, dict) and key in nested:
            return nested[key]
    return None


def _coerce_expires_in_seconds(value: Any) -> int:
    if isinstance(value, bool):
        return 3600
    if isinstance(value, int | float):
        return int(value) if value > 0 else 3600
    return 3600


def _safe_google_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error_payload = payload.get("error")
        if isinstance(error_payload, dict):
            message = error_payload.get("message")
            if isinstance(message, str) and message.strip():
                return " ".join(message.split())[:200]
        if isinstance(error_payload, str) and error_payload.strip():
            return " ".join(error_payload.split())[:200]

    raw_text = response.text.strip()
    if raw_text:
        return " ".join(raw_text.split())[:200]
    return "Request failed without an error payload"


class AccessTokenProvider(abc.ABC):
    """Supplies bearer tokens for Calendar API requests."""

    @abc.abstractmethod
    async def get_access_token(self, *, force_refresh: bool = False) -> str: ...


class ServiceAccountTokenProvider(AccessTokenProvider):
    """Mint tokens from a service-account key with google-auth."""

    def __init__(self, info: dict[str, Any], scopes: list[str]) -> None:
        try:
            self._credentials = service_account.Credentials.from_service_account_info(
                info, scopes=scopes
            )
        except (ValueError, KeyError) as exc:
            raise CalendarCredentialError(f"Invalid service account credentials: {exc}") from exc
        self._refresh_lock = asyncio.Lock()

    @property
    def service_account_email(self) -> str:
        return self._credentials.service_account_email

    async def get_access_token(self, *, force_refresh: bool = False) -> str:
        if not force_refresh and self._credentials.valid:
            return self._credentials.token

        async with self._refresh_lock:
            if not force_refresh and self._credentials.valid:
                return self._credentials.token
            try:
                await asyncio.to_thread(self._credentials.refresh, GoogleAuthRequest())
            except GoogleAuthError as exc:
                raise CalendarTokenRefreshError(
                    f"Service account token refresh failed: {exc}"
                ) from exc
            logger.debug("Refreshed service account token for %s", self.service_account_email)
            return self._credentials.token


class RefreshTokenProvider(AccessTokenProvider):
    """Refresh-token OAuth helper with lightweight access-token caching."""

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        http_client: httpx.AsyncClient,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._http_client = http_client
        self._access_token: str | None = None
        self._access_token_expires_at: datetime | None = None
        self._refresh_lock = asyncio.Lock()

    @classmethod
    def from_info(
        cls,
        info: dict[str, Any],
        http_client: httpx.AsyncClient,
    ) -> RefreshTokenProvider:
        credential_data = {
            key: _extract_google_credential_value(info, key)
            for key in ("client_id", "client_secret", "refresh_token")
        }

        missing = sorted(key for key, value in credential_data.items() if value is None)
        if missing:
            field_list = ", ".join(missing)
            raise CalendarCredentialError(
                f"Credential JSON is missing required field(s): {field_list}"
            )

        invalid = sorted(
            key
            for key, value in credential_data.items()
            if not isinstance(value, str) or not value.strip()
        )
        if invalid:
            field_list = ", ".join(invalid)
            raise CalendarCredentialError(
                f"Credential JSON must contain non-empty string field(s): {field_list}"
            )

        return cls(
            client_id=credential_data["client_id"].strip(),
            client_secret=credential_data["client_secret"].strip(),
            refresh_token=credential_data["refresh_token"].strip(),
            http_client=http_client,
        )

    async def get_access_token(self, *, force_refresh: bool = False) -> str:
        if not force_refresh and self._token_is_fresh():
            assert self._access_token is not None
            return self._access_token

        async with self._refresh_lock:
            if not force_refresh and self._token_is_fresh():
                assert self._access_token is not None
                return self._access_token

            await self._refresh_access_token()
            assert self._access_token is not None
            return self._access_token

    def _token_is_fresh(self) -> bool:
        if self._access_token is None or self._access_token_expires_at is None:
            return False
        return datetime.now(UTC) < self._access_token_expires_at

    async def _refresh_access_token(self) -> None:
        try:
            response = await self._http_client.post(
                GOOGLE_OAUTH_TOKEN_URL,
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "refresh_token": self._refresh_token,
                    "grant_type": "refresh_token",
                },
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise CalendarTokenRefreshError(
                f"Google OAuth token refresh request failed: {exc}"
            ) from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise CalendarTokenRefreshError(
                "Google OAuth token refresh failed "
                f"({response.status_code}): {_safe_google_error_message(response)}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise CalendarTokenRefreshError(
                "Google OAuth token endpoint returned invalid JSON"
            ) from exc

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(access_token, str) or not access_token.strip():
            raise CalendarTokenRefreshError(
                "Google OAuth token response is missing a non-empty access_token"
            )

        expires_in_raw = payload.get("expires_in") if isinstance(payload, dict) else None
        expires_in_seconds = _coerce_expires_in_seconds(expires_in_raw)
        refresh_ttl_seconds = max(expires_in_seconds - 60, 30)

        self._access_token = access_token.strip()
        self._access_token_expires_at = datetime.now(UTC) + timedelta(seconds=refresh_ttl_seconds)


def build_token_provider(
    info: dict[str, Any],
    *,
    read_only: bool,
    http_client: httpx.AsyncClient,
) -> AccessTokenProvider:
    """Pick the token provider matching the credential JSON's ``type``."""
    scopes = [CALENDAR_READONLY_SCOPE if read_only else CALENDAR_SCOPE]
    credential_type = info.get("type")
    if credential_type == "service_account":
        return ServiceAccountTokenProvider(info, scopes)
    if credential_type in (None, "authorized_user"):
        return RefreshTokenProvider.from_info(info, http_client)
    raise CalendarCredentialError(f"Unsupported credential type: {credential_type}")


# ---------------------------------------------------------------------------
# Payload conversion
# ---------------------------------------------------------------------------


def _events_path(calendar_id: str) -> str:
    return f"/calendars/{quote(calendar_id, safe='')}/events"


def _event_path(calendar_id: str, event_id: str) -> str:
    return f"{_events_path(calendar_id)}/{quote(event_id, safe='')}"


def _google_rfc3339(value: datetime) -> str:
    normalized = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    return normalized.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _normalize_optional_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    return normalized or None


def _parse_google_event_boundary(payload: dict[str, Any], *, fallback_zone: tzinfo) -> datetime:
    date_time = payload.get("dateTime")
    if isinstance(date_time, str) and date_time.strip():
        try:
            return timeparse.parse_iso_datetime(date_time, fallback_zone)
        except timeparse.Unparseable as exc:
            raise ValueError(f"Google Calendar returned an invalid dateTime: {date_time}") from exc

    date_value = payload.get("date")
    if isinstance(date_value, str) and date_value.strip():
        try:
            parsed_date = date.fromisoformat(date_value)
        except ValueError as exc:
            raise ValueError(
                f"Google Calendar returned an invalid date value: {date_value}"
            ) from exc
        return datetime(parsed_date.year, parsed_date.month, parsed_date.day, tzinfo=fallback_zone)

    raise ValueError("Google Calendar event is missing start/end dateTime or date values")


def _parse_google_event_status(value: Any) -> EventStatus:
    if isinstance(value, str):
        try:
            return EventStatus(value.strip().lower())
        except ValueError:
            pass
    return EventStatus.confirmed


def _extract_google_attendees(payload: Any) -> list[str]:
    if not isinstance(payload, list):
        return []
    emails: list[str] = []
    for item in payload:
        if isinstance(item, dict):
            email = _normalize_optional_text(item.get("email"))
            if email:
                emails.append(email)
    return emails


def _google_event_to_calendar_event(
    payload: dict[str, Any],
    *,
    fallback_zone: tzinfo,
) -> CalendarEvent:
    """Convert a Google event resource.

    Raises
    ------
    ValueError
        If the payload has no usable start/end or the interval is empty.
    """
    start_payload = payload.get("start")
    end_payload = payload.get("end")
    if not isinstance(start_payload, dict) or not isinstance(end_payload, dict):
        raise ValueError(f"Google Calendar event '{payload.get('id')}' is missing start/end")

    return CalendarEvent(
        id=_normalize_optional_text(payload.get("id")),
        summary=_normalize_optional_text(payload.get("summary")) or "(untitled)",
        description=_normalize_optional_text(payload.get("description")),
        location=_normalize_optional_text(payload.get("location")),
        start=_parse_google_event_boundary(start_payload, fallback_zone=fallback_zone),
        end=_parse_google_event_boundary(end_payload, fallback_zone=fallback_zone),
        attendees=_extract_google_attendees(payload.get("attendees")),
        status=_parse_google_event_status(payload.get("status")),
    )


def _build_google_event_body(event: CalendarEvent, *, timezone: str) -> dict[str, Any]:
    body: dict[str, Any] = {
        "summary": event.summary,
        "start": {"dateTime": event.start.isoformat(), "timeZone": timezone},
        "end": {"dateTime": event.end.isoformat(), "timeZone": timezone},
    }
    if event.description:
        body["description"] = event.description
    if event.location:
        body["location"] = event.location
    if event.attendees:
        body["attendees"] = [{"email": email} for email in event.attendees]
    if event.status is not EventStatus.confirmed:
        body["status"] = event.status.value
    return body


def _google_calendar_to_info(payload: dict[str, Any]) -> CalendarInfo | None:
    calendar_id = _normalize_optional_text(payload.get("id"))
    if calendar_id is None:
        return None
    return CalendarInfo(
        id=calendar_id,
        summary=_normalize_optional_text(payload.get("summaryOverride"))
        or _normalize_optional_text(payload.get("summary"))
        or calendar_id,
        description=_normalize_optional_text(payload.get("description")),
        access_role=_normalize_optional_text(payload.get("accessRole")) or "reader",
        primary=payload.get("primary") is True,
    )


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


class GoogleCalendarBackend(CalendarBackend):
    """Google Calendar v3 backend with authenticated request helpers."""

    def __init__(
        self,
        token_provider: AccessTokenProvider,
        *,
        timezone: str = "UTC",
        http_client: httpx.AsyncClient | None = None,
        base_url: str = GOOGLE_CALENDAR_API_BASE_URL,
    ) -> None:
        self._token_provider = token_provider
        self._timezone = timezone
        self._zone = timeparse.resolve_zone(timezone)
        self._base_url = base_url.rstrip("/")
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=30.0)

    @classmethod
    def from_credentials(
        cls,
        source: tuple[str, str],
        *,
        read_only: bool = False,
        timezone: str = "UTC",
        http_client: httpx.AsyncClient | None = None,
    ) -> GoogleCalendarBackend:
        """Build a backend from a ``("json" | "file", value)`` credential source."""
        info = load_credential_info(source)
        client = http_client or httpx.AsyncClient(timeout=30.0)
        provider = build_token_provider(info, read_only=read_only, http_client=client)
        backend = cls(provider, timezone=timezone, http_client=client)
        backend._owns_http_client = http_client is None
        return backend

    @property
    def name(self) -> str:
        return "google"

    async def _request_google_json(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        response = await self._request_with_bearer(
            method=method,
            path=path,
            params=params,
            json_body=json_body,
        )

        if response.status_code == 404:
            raise CalendarNotFoundError(_safe_google_error_message(response))
        if response.status_code < 200 or response.status_code >= 300:
            raise CalendarRequestError(
                status_code=response.status_code,
                message=_safe_google_error_message(response),
            )

        if response.status_code == 204:
            return {}

        try:
            payload = response.json()
        except ValueError as exc:
            raise CalendarBackendError(
                "Google Calendar API returned invalid JSON for a successful response"
            ) from exc

        if not isinstance(payload, dict):
            raise CalendarBackendError(
                "Google Calendar API returned an unexpected JSON payload shape"
            )
        return payload

    async def _request_with_bearer(
        self,
        *,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        normalized_path = path if path.startswith("/") else f"/{path}"
        url = f"{self._base_url}{normalized_path}"

        response = await self._request_once(
            method=method,
            url=url,
            params=params,
            json_body=json_body,
            force_refresh=False,
        )

        if response.status_code == 401:
            response = await self._request_once(
                method=method,
                url=url,
                params=params,
                json_body=json_body,
                force_refresh=True,
            )

        retry = 0
        while (
            response.status_code in RATE_LIMIT_RETRY_STATUS_CODES and retry < RATE_LIMIT_MAX_RETRIES
        ):
            backoff = RATE_LIMIT_BASE_BACKOFF_SECONDS * (2**retry)
            if response.status_code == 429:
                retry_after_header = response.headers.get("Retry-After")
                if retry_after_header is not None:
                    try:
                        backoff = float(retry_after_header)
                    except ValueError:
                        pass
            logger.warning(
                "Calendar API rate-limited (status=%d), retrying in %.1fs (attempt %d/%d)",
                response.status_code,
                backoff,
                retry + 1,
                RATE_LIMIT_MAX_RETRIES,
            )
            await asyncio.sleep(backoff)
            response = await self._request_once(
                method=method,
                url=url,
                params=params,
                json_body=json_body,
                force_refresh=False,
            )
            retry += 1

        return response

    async def _request_once(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None,
        json_body: dict[str, Any] | None,
        force_refresh: bool,
    ) -> httpx.Response:
        access_token = await self._token_provider.get_access_token(force_refresh=force_refresh)
        try:
            return await self._http_client.request(
                method,
                url,
                params=params,
                json=json_body,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as exc:
            raise CalendarBackendError(f"Google Calendar request failed: {exc}") from exc

    def _convert_items(self, items: list[Any]) -> list[CalendarEvent]:
        events: list[CalendarEvent] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                events.append(_google_event_to_calendar_event(item, fallback_zone=self._zone))
            except (ValueError, ValidationError) as exc:
                logger.warning("Skipping event %s with unparseable times: %s", item.get("id"), exc)
        return events

    async def list_events(
        self,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
    ) -> list[CalendarEvent]:
        params: dict[str, Any] = {
            "singleEvents": True,
            "showDeleted": False,
            "orderBy": "startTime",
            "maxResults": MAX_LIST_RESULTS,
            "timeMin": _google_rfc3339(time_min),
            "timeMax": _google_rfc3339(time_max),
        }
        payload = await self._request_google_json(
            "GET",
            _events_path(calendar_id),
            params=params,
        )
        items = payload.get("items")
        if not isinstance(items, list):
            raise CalendarBackendError("Google Calendar list_events response missing items array")

        events = self._convert_items(items)
        logger.info("Retrieved %d event(s) from calendar %s", len(events), calendar_id)
        return events

    async def get_event(self, calendar_id: str, event_id: str) -> CalendarEvent:
        normalized_event_id = event_id.strip()
        if not normalized_event_id:
            raise ValueError("event_id must be a non-empty string")

        payload = await self._request_google_json(
            "GET",
            _event_path(calendar_id, normalized_event_id),
        )
        return _google_event_to_calendar_event(payload, fallback_zone=self._zone)

    async def create_event(self, calendar_id: str, event: CalendarEvent) -> CalendarEvent:
        payload = await self._request_google_json(
            "POST",
            _events_path(calendar_id),
            json_body=_build_google_event_body(event, timezone=self._timezone),
        )
        created = _google_event_to_calendar_event(payload, fallback_zone=self._zone)
        logger.info(
            "Created event %s (%s) in calendar %s", created.id, created.summary, calendar_id
        )
        return created

    async def update_event(
        self,
        calendar_id: str,
        event_id: str,
        event: CalendarEvent,
    ) -> CalendarEvent:
        normalized_event_id = event_id.strip()
        if not normalized_event_id:
            raise ValueError("event_id must be a non-empty string")

        payload = await self._request_google_json(
            "PUT",
            _event_path(calendar_id, normalized_event_id),
            json_body=_build_google_event_body(event, timezone=self._timezone),
        )
        updated = _google_event_to_calendar_event(payload, fallback_zone=self._zone)
        logger.info("Updated event %s in calendar %s", normalized_event_id, calendar_id)
        return updated

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        """Delete an event; a 404 means it is already gone and counts as success."""
        normalized_event_id = event_id.strip()
        if not normalized_event_id:
            raise ValueError("event_id must be a non-empty string")

        response = await self._request_with_bearer(
            method="DELETE",
            path=_event_path(calendar_id, normalized_event_id),
        )

        if response.status_code == 404:
            logger.debug(
                "delete_event: event '%s' not found (already deleted); treating as success",
                normalized_event_id,
            )
            return

        if response.status_code < 200 or response.status_code >= 300:
            raise CalendarRequestError(
                status_code=response.status_code,
                message=_safe_google_error_message(response),
            )
        logger.info("Deleted event %s from calendar %s", normalized_event_id, calendar_id)

    async def list_calendars(self) -> list[CalendarInfo]:
        payload = await self._request_google_json("GET", "/users/me/calendarList")
        items = payload.get("items")
        if not isinstance(items, list):
            return []

        calendars: list[CalendarInfo] = []
        for item in items:
            if isinstance(item, dict) and (info := _google_calendar_to_info(item)) is not None:
                calendars.append(info)
        logger.info("Retrieved %d calendar(s)", len(calendars))
        return calendars

    async def shutdown(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()
