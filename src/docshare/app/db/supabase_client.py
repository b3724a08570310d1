"""Async PostgREST client wrapper for Supabase.

This is the single point of Supabase table access for the sharing
repositories. Storage and Auth calls live in their own clients
(``storage.object_store`` and ``identity.otp``) but share the error
hierarchy in ``db.errors``.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

import httpx

from .errors import SupabaseError, error_class_for_status

# Module-level shared client for connection pooling in app runtimes/tests.
_shared_async_client: httpx.AsyncClient | None = None


def get_shared_async_client() -> httpx.AsyncClient:
    global _shared_async_client
    if _shared_async_client is None:
        _shared_async_client = httpx.AsyncClient()
    return _shared_async_client


def _reset_shared_async_client_for_tests() -> None:
    """Test helper: clear shared client cache (does not close the instance)."""
    global _shared_async_client
    _shared_async_client = None


Filters = Mapping[str, tuple[str, Any] | Any] | None


def _encode_filter_value(op: str, value: Any) -> str:
    if op == "is":
        if value is None:
            return "null"
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    if op == "in":
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError("in operator requires an iterable of values")
        items = []
        for v in value:
            if isinstance(v, str):
                # PostgREST expects quoted strings inside `in.(...)`.
                items.append(json.dumps(v))
            elif v is None:
                items.append("null")
            else:
                items.append(str(v))
        return f"({','.join(items)})"

    if value is None:
        raise ValueError(f"{op} does not support None; use op='is' with value=None")

    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def filters_to_params(filters: Filters) -> dict[str, str]:
    if not filters:
        return {}

    params: dict[str, str] = {}
    for col, spec in filters.items():
        if isinstance(spec, tuple) and len(spec) == 2:
            op, val = spec
        else:
            op, val = "eq", spec
        params[str(col)] = f"{op}.{_encode_filter_value(str(op), val)}"
    return params


def raise_for_supabase_error(resp: httpx.Response) -> None:
    """Raise the typed SupabaseError for a >=400 response."""
    if resp.status_code < 400:
        return

    message = resp.text
    code = details = None
    try:
        payload = resp.json()
        if isinstance(payload, dict):
            message = (
                payload.get("message")
                or payload.get("msg")
                or payload.get("error_description")
                or payload.get("error")
                or message
            )
            code = payload.get("code") or payload.get("error_code")
            details = payload.get("details")
    except ValueError:
        pass

    # Never include request headers: they carry the service-role key.
    raise error_class_for_status(resp.status_code)(
        status_code=resp.status_code,
        message=str(message),
        code=str(code) if code is not None else None,
        details=str(details) if details is not None else None,
    )


class SupabaseClient:
    """Minimal async PostgREST client (service role) returning row dicts."""

    def __init__(
        self,
        *,
        supabase_url: str,
        service_role_key: str,
        schema: str = "public",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not service_role_key:
            raise ValueError("service_role_key is required")

        self._supabase_url = supabase_url.rstrip("/")
        self._service_role_key = service_role_key
        self._schema = schema or "public"
        self._timeout_seconds = float(timeout_seconds)
        self._client = http_client or get_shared_async_client()

    @property
    def base_rest_url(self) -> str:
        return f"{self._supabase_url}/rest/v1"

    def _headers(self, method: str, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._service_role_key,
            "Authorization": f"Bearer {self._service_role_key}",
            "Accept-Profile": self._schema,
        }
        if method in ("POST", "PATCH", "DELETE"):
            headers["Content-Profile"] = self._schema
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _send(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        body: Any = None,
        prefer: str | None = None,
    ) -> list[dict[str, Any]]:
        resp = await self._client.request(
            method,
            f"{self.base_rest_url}/{table}",
            params=params,
            json=body,
            headers=self._headers(method, prefer),
            timeout=self._timeout_seconds,
        )
        raise_for_supabase_error(resp)
        payload = resp.json()
        if not isinstance(payload, list):
            raise SupabaseError(
                status_code=500,
                message=f"expected list response from {method} {table}",
            )
        return payload

    async def select(
        self,
        table: str,
        filters: Filters = None,
        *,
        columns: str = "*",
        limit: int | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        params = filters_to_params(filters)
        params["select"] = columns
        if limit is not None:
            params["limit"] = str(int(limit))
        if order:
            params["order"] = order
        return await self._send("GET", table, params=params)

    async def insert(
        self,
        table: str,
        data: Mapping[str, Any] | Sequence[Mapping[str, Any]],
    ) -> list[dict[str, Any]]:
        return await self._send(
            "POST", table, body=data, prefer="return=representation",
        )

    async def update(
        self,
        table: str,
        filters: Filters,
        data: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        if not filters:
            # An unfiltered PATCH would rewrite the whole table.
            raise ValueError("update requires at least one filter")
        return await self._send(
            "PATCH",
            table,
            params=filters_to_params(filters),
            body=dict(data),
            prefer="return=representation",
        )
