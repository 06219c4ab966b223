"""HTTP client for the finance backend: group settings, sync triggers and the event stream."""
from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from core.errors import BackendError
from core.log import get_logger
from core.settings import API, ApiSettings
from models.settings import SettingValue


class FinanceApiClient:
    def __init__(
        self,
        settings: ApiSettings = API,
        *,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.token = token
        self.logger = get_logger("api")
        self._client = client or httpx.AsyncClient(
            base_url=settings.base_url.rstrip("/"),
            timeout=settings.timeout_sec,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.settings.organization_id:
            headers["X-Organization-Id"] = self.settings.organization_id
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _call(self, method: str, path: str, data: Optional[dict] = None) -> Any:
        """Send a request and unwrap the ``{success, data, error}`` envelope."""

        try:
            response = await self._client.request(method, path, headers=self._headers(), json=data)
        except httpx.TimeoutException:
            raise BackendError(f"{method} {path} timed out") from None
        except httpx.RequestError as exc:
            raise BackendError(f"Connection error: {exc}") from exc

        if response.status_code == 204 or not response.content:
            if response.status_code >= 400:
                raise BackendError(f"{method} {path} failed", response.status_code)
            return None

        try:
            body = response.json()
        except json.JSONDecodeError:
            body = None

        if response.status_code >= 400:
            self.logger.error("%s %s -> %s: %s", method, path, response.status_code, response.text[:500])
            raise BackendError(_error_message(body) or f"{method} {path} failed", response.status_code)

        if isinstance(body, dict) and "success" in body:
            if not body.get("success"):
                raise BackendError(_error_message(body) or "Request rejected", response.status_code)
            return body.get("data")
        return body

    # ------------------------------------------------------------------
    # Settings
    async def fetch_settings(self, entity_id: str) -> Dict[str, Any]:
        path = self.settings.settings_path.format(entity_id=entity_id)
        data = await self._call("GET", path)
        if not isinstance(data, dict):
            raise BackendError(f"Malformed settings payload for {entity_id}")
        return _settings_payload(data)

    async def write_settings(
        self, entity_id: str, key: str, value: SettingValue
    ) -> Optional[Dict[str, Any]]:
        path = self.settings.settings_path.format(entity_id=entity_id)
        data = await self._call("PATCH", path, {key: value})
        if not data:
            return None
        if not isinstance(data, dict):
            raise BackendError(f"Malformed settings payload for {entity_id}")
        return _settings_payload(data)

    # ------------------------------------------------------------------
    # Sync jobs
    async def trigger_sync(self, job_key: str) -> None:
        path = self.settings.trigger_sync_path.format(job_key=job_key)
        await self._call("POST", path)

    async def stream_events(self) -> AsyncIterator[Dict[str, Any]]:
        """Yield JSON payloads from the server-sent event stream."""

        headers = self._headers()
        headers["Accept"] = "text/event-stream"
        try:
            async with self._client.stream(
                "GET", self.settings.events_path, headers=headers, timeout=None
            ) as response:
                if response.status_code >= 400:
                    raise BackendError("Sync event stream refused", response.status_code)
                buffer = []
                async for line in response.aiter_lines():
                    if line.startswith("data:"):
                        buffer.append(line[5:].lstrip())
                        continue
                    if line.strip() or not buffer:
                        continue
                    payload = _decode_json("\n".join(buffer))
                    buffer = []
                    if payload is not None:
                        yield payload
                if buffer:
                    payload = _decode_json("\n".join(buffer))
                    if payload is not None:
                        yield payload
        except httpx.RequestError as exc:
            raise BackendError(f"Sync event stream interrupted: {exc}") from exc


def _settings_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    # Some endpoints wrap the values: {"settings": {...}, "groupId": ...}
    inner = data.get("settings")
    return inner if isinstance(inner, dict) else data


def _error_message(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        return error.get("message") or error.get("code")
    if isinstance(error, str):
        return error
    message = body.get("message")
    return message if isinstance(message, str) else None


def _decode_json(text: str) -> Optional[Dict[str, Any]]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


__all__ = ["FinanceApiClient"]
