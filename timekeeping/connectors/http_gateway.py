import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from timekeeping.config import settings
from timekeeping.connectors.base import BaseEntryGateway
from timekeeping.errors import (
    EntryNotFoundError,
    GatewayTimeoutError,
    IllegalTransitionError,
    TransientGatewayError,
    UnauthorizedError,
)
from timekeeping.schemas.filters import TimeEntryFilters
from timekeeping.schemas.time_entry import EntryAction, ManualEntryDraft, TimeEntry, TimeEntryDraft, TimeEntryUpdate
from timekeeping.services.session_expiry import SessionExpiredNotifier
from timekeeping.utils.timestamps import to_api_timestamp

log = logging.getLogger(__name__)

# Status codes the server uses to reject a transition the entry is not eligible for.
_REJECTED_TRANSITION_CODES = (400, 409, 422)


class HttpEntryGateway(BaseEntryGateway):
    """
    Gateway for the time-tracking REST API.

    Endpoints: GET/POST {api_path}, POST {api_path}/add, GET {api_path}/active,
    GET/PATCH/DELETE {api_path}/{id}, POST {api_path}/{id}/{pause|resume|stop|complete},
    POST {api_path}/{id}/breaks.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        api_path: Optional[str] = None,
        timeout: Optional[float] = None,
        notifier: Optional[SessionExpiredNotifier] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.api_base_url).strip().rstrip("/")
        self.api_token = api_token if api_token is not None else settings.api_token
        self.api_path = "/" + (api_path or settings.api_path).strip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self.notifier = notifier or SessionExpiredNotifier(settings.session_expired_debounce_seconds)

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            follow_redirects=True,
            timeout=self.timeout,
            transport=transport,
        )
        self.headers = {"Accept": "application/json"}
        if self.api_token:
            self.headers["Authorization"] = f"Bearer {self.api_token}"

        log.info(f"Entry gateway initialized with base URL: {self.base_url}{self.api_path}")

    def _path(self, *segments: str) -> str:
        if not segments:
            return self.api_path
        return self.api_path + "/" + "/".join(quote(segment, safe="") for segment in segments)

    async def _request(
        self,
        method: str,
        path: str,
        entry_id: Optional[str] = None,
        action: Optional[EntryAction] = None,
        **kwargs,
    ) -> Any:
        """
        Sends an authenticated request and maps failures onto the gateway errors.
        Returns the decoded JSON body, or None for empty responses.
        """
        try:
            log.trace(f"Entry API {method} {path} params={kwargs.get('params', 'none')}")
            response = await self.client.request(method, path, headers=self.headers, **kwargs)
            log.trace(f"Entry API response for {path}: {response.status_code}")
        except httpx.TimeoutException as e:
            log.warning(f"Timeout calling {method} {path}: {e}")
            raise GatewayTimeoutError(f"Request timed out: {method} {path}", entry_id=entry_id) from e
        except httpx.RequestError as e:
            log.error(f"Request error for {method} {path}: {e}")
            raise TransientGatewayError(str(e) or type(e).__name__, entry_id=entry_id) from e

        status = response.status_code
        if 200 <= status < 300:
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError:
                log.warning(f"Non-JSON response body for {method} {path}")
                return None

        message = self._error_message(response)
        if status == 401:
            log.warning(f"Entry API rejected credentials for {method} {path}")
            self.notifier.notify()
            raise UnauthorizedError(message, entry_id=entry_id, status_code=status)
        if status == 404:
            log.info(f"Entry API resource not found: {method} {path}")
            raise EntryNotFoundError(message, entry_id=entry_id, status_code=status)
        if action is not None and status in _REJECTED_TRANSITION_CODES:
            log.warning(f"Server rejected '{action.value}' for entry {entry_id}: {message}")
            raise IllegalTransitionError(None, action, detail=message)

        log.error(f"Entry API HTTP {status} for {method} {path}: {response.text}")
        raise TransientGatewayError(message, entry_id=entry_id, status_code=status)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return f"Server error ({response.status_code})"

    @staticmethod
    def _entry_from(data: Any) -> Optional[TimeEntry]:
        if isinstance(data, dict) and isinstance(data.get("timeEntry"), dict):
            return TimeEntry.model_validate(data["timeEntry"])
        return None

    @staticmethod
    def _entries_from(data: Any) -> List[TimeEntry]:
        items = data.get("timeEntries") if isinstance(data, dict) else None
        return [TimeEntry.model_validate(item) for item in (items or [])]

    async def fetch_entry(self, entry_id: str) -> TimeEntry:
        data = await self._request("GET", self._path(entry_id), entry_id=entry_id)
        entry = self._entry_from(data)
        if entry is None:
            raise TransientGatewayError("Response did not contain a time entry", entry_id=entry_id)
        return entry

    async def list_entries(self, filters: Optional[TimeEntryFilters] = None) -> List[TimeEntry]:
        filters = filters or TimeEntryFilters()
        data = await self._request("GET", self._path(), params=filters.to_query_params())
        entries = self._entries_from(data)
        log.debug(f"Fetched {len(entries)} time entries")
        return entries

    async def list_active_entries(self) -> List[TimeEntry]:
        data = await self._request("GET", self._path("active"))
        return self._entries_from(data)

    async def create_entry(self, draft: TimeEntryDraft) -> str:
        payload = draft.model_dump(by_alias=True, exclude_none=True)
        data = await self._request("POST", self._path(), json=payload)
        if not isinstance(data, dict) or "id" not in data:
            raise TransientGatewayError("Create response did not contain an id")
        entry_id = str(data["id"])
        log.info(f"Started time entry {entry_id}")
        return entry_id

    async def add_manual_entry(self, draft: ManualEntryDraft) -> str:
        payload = draft.model_dump(by_alias=True, exclude_none=True)
        data = await self._request("POST", self._path("add"), json=payload)
        if not isinstance(data, dict) or "id" not in data:
            raise TransientGatewayError("Add response did not contain an id")
        entry_id = str(data["id"])
        log.info(f"Added manual time entry {entry_id} ({draft.total_seconds}s)")
        return entry_id

    async def update_entry(self, entry_id: str, update: TimeEntryUpdate) -> None:
        payload = update.model_dump(by_alias=True, exclude_none=True)
        await self._request("PATCH", self._path(entry_id), entry_id=entry_id, json=payload)
        log.debug(f"Updated time entry {entry_id}: {sorted(payload)}")

    async def unarchive_entry(self, entry_id: str) -> None:
        await self._request("PATCH", self._path(entry_id), entry_id=entry_id, json={"archivedAt": None})
        log.info(f"Unarchived time entry {entry_id}")

    async def apply_transition(self, entry_id: str, action: EntryAction) -> TimeEntry:
        action = EntryAction(action)
        data = await self._request(
            "POST", self._path(entry_id, action.value), entry_id=entry_id, action=action
        )
        log.info(f"Applied '{action.value}' to time entry {entry_id}")
        # Action endpoints may answer without a body; the snapshot is then re-read.
        return self._entry_from(data) or await self.fetch_entry(entry_id)

    async def delete_entry(self, entry_id: str) -> None:
        await self._request("DELETE", self._path(entry_id), entry_id=entry_id)
        log.info(f"Deleted time entry {entry_id}")

    async def update_collections(self, entry_id: str, collection_ids: List[str]) -> None:
        payload: Dict[str, Any] = {"collectionIds": list(collection_ids)}
        await self._request("PATCH", self._path(entry_id), entry_id=entry_id, json=payload)
        log.debug(f"Updated collections of time entry {entry_id}: {collection_ids}")

    async def request_metadata_refresh(self, entry_id: str) -> None:
        await self._request(
            "PATCH", self._path(entry_id), entry_id=entry_id, json={"extractMetadata": True}
        )
        log.debug(f"Requested metadata refresh for time entry {entry_id}")

    async def _add_break(
        self,
        entry_id: str,
        started_at: datetime,
        ended_at: datetime,
        description: Optional[str],
    ) -> TimeEntry:
        payload: Dict[str, Any] = {
            "startedAt": to_api_timestamp(started_at),
            "endedAt": to_api_timestamp(ended_at),
        }
        if description:
            payload["description"] = description
        data = await self._request("POST", self._path(entry_id, "breaks"), entry_id=entry_id, json=payload)
        log.info(f"Added break to time entry {entry_id}")
        return self._entry_from(data) or await self.fetch_entry(entry_id)

    async def close(self) -> None:
        await self.client.aclose()
