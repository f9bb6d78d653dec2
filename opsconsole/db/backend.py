from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple, Union
import logging
import re

import httpx

from opsconsole.core.config import settings
from opsconsole.core.errors import BackendError

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
Condition = Tuple[str, str, Any]

_RESERVED = re.compile(r'[,.:()"\\\s]')


class Query:
    """
    Fluent table query, executed by the backend that created it.
    Mirrors the hosted platform's query builder: pick an action, add filters, then `await execute()`.
    """

    def __init__(self, backend: "Backend", table: str):
        self._backend = backend
        self.table = table
        self.action = "select"
        self.columns = "*"
        self.payload: Union[Row, List[Row], None] = None
        self.on_conflict: Optional[str] = None
        self.filters: List[Condition] = []
        self.or_groups: List[List[Condition]] = []
        self.orders: List[Tuple[str, bool]] = []
        self.limit_count: Optional[int] = None
        self.single_mode: Optional[str] = None

    # Actions
    def select(self, columns: str = "*") -> "Query":
        self.columns = columns
        return self

    def insert(self, rows: Union[Row, List[Row]]) -> "Query":
        self.action = "insert"
        self.payload = rows
        return self

    def update(self, values: Row) -> "Query":
        self.action = "update"
        self.payload = values
        return self

    def upsert(self, row: Union[Row, List[Row]], on_conflict: str) -> "Query":
        self.action = "upsert"
        self.payload = row
        self.on_conflict = on_conflict
        return self

    def delete(self) -> "Query":
        self.action = "delete"
        return self

    # Filters
    def eq(self, column: str, value: Any) -> "Query":
        self.filters.append((column, "eq", value))
        return self

    def neq(self, column: str, value: Any) -> "Query":
        self.filters.append((column, "neq", value))
        return self

    def in_(self, column: str, values: List[Any]) -> "Query":
        self.filters.append((column, "in", list(values)))
        return self

    def gte(self, column: str, value: Any) -> "Query":
        self.filters.append((column, "gte", value))
        return self

    def lte(self, column: str, value: Any) -> "Query":
        self.filters.append((column, "lte", value))
        return self

    def ilike(self, column: str, pattern: str) -> "Query":
        self.filters.append((column, "ilike", pattern))
        return self

    def or_(self, *conditions: Condition) -> "Query":
        self.or_groups.append(list(conditions))
        return self

    def order(self, column: str, desc: bool = False) -> "Query":
        self.orders.append((column, desc))
        return self

    def limit(self, count: int) -> "Query":
        self.limit_count = count
        return self

    def single(self) -> "Query":
        self.single_mode = "single"
        return self

    def maybe_single(self) -> "Query":
        self.single_mode = "maybe"
        return self

    async def execute(self) -> Any:
        rows = await self._backend.execute(self)
        return shape_result(self, rows)


def shape_result(query: Query, rows: List[Row]) -> Any:
    if query.single_mode is None:
        return rows
    if len(rows) > 1 or (query.single_mode == "single" and not rows):
        raise BackendError(
            "JSON object requested, multiple (or no) rows returned",
            code="PGRST116",
            details={"table": query.table, "rows": len(rows)},
        )
    return rows[0] if rows else None


class Backend(ABC):
    def table(self, name: str) -> Query:
        return Query(self, name)

    @abstractmethod
    async def execute(self, query: Query) -> List[Row]:
        pass

    @abstractmethod
    async def rpc(self, name: str, args: Optional[Row] = None) -> Any:
        pass

    @abstractmethod
    async def invoke(self, function: str, body: Row) -> Any:
        pass

    @abstractmethod
    async def upload(self, bucket: str, path: str, content: bytes, content_type: str = "application/octet-stream") -> str:
        pass

    @abstractmethod
    def public_url(self, bucket: str, path: str) -> str:
        pass

    async def close(self):
        pass


def _format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quote(value: Any) -> str:
    # Inside in.(...) and or=(...) reserved characters need a double-quoted value
    text = _format_value(value)
    if _RESERVED.search(text):
        return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return text


def _format_condition(column: str, op: str, value: Any, nested: bool = False) -> str:
    if op == "in":
        return f"in.({','.join(_quote(v) for v in value)})"
    if op == "eq" and value is None:
        return "is.null"
    return f"{op}.{_quote(value) if nested else _format_value(value)}"


class RestBackend(Backend):
    """Hosted backend over its HTTP surface: REST tables, RPC, edge functions and object storage."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 15.0, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"apikey": api_key, "Authorization": f"Bearer {api_key}"},
        )

    def _query_params(self, query: Query) -> List[Tuple[str, str]]:
        params: List[Tuple[str, str]] = []
        if query.action == "select":
            params.append(("select", query.columns))
        for column, op, value in query.filters:
            params.append((column, _format_condition(column, op, value)))
        for group in query.or_groups:
            parts = [f"{column}.{_format_condition(column, op, value, nested=True)}" for column, op, value in group]
            params.append(("or", f"({','.join(parts)})"))
        if query.orders:
            params.append(("order", ",".join(f"{c}.{'desc' if d else 'asc'}" for c, d in query.orders)))
        if query.limit_count is not None:
            params.append(("limit", str(query.limit_count)))
        if query.on_conflict:
            params.append(("on_conflict", query.on_conflict))
        return params

    async def _send(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Backend request failed: {method} {url}: {e}")
            raise BackendError(f"Network error: {e}") from e

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {"message": response.text}
            if not isinstance(payload, dict):
                payload = {"message": str(payload)}
            raise BackendError(
                payload.get("message") or payload.get("error") or f"HTTP {response.status_code}",
                code=payload.get("code"),
                details=payload.get("details"),
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def execute(self, query: Query) -> List[Row]:
        url = f"/rest/v1/{query.table}"
        params = self._query_params(query)
        headers = {"Prefer": "return=representation"}
        method = {"select": "GET", "insert": "POST", "upsert": "POST", "update": "PATCH", "delete": "DELETE"}[query.action]
        if query.action == "upsert":
            headers["Prefer"] = "return=representation,resolution=merge-duplicates"

        kwargs: Dict[str, Any] = {"params": params, "headers": headers}
        if query.payload is not None:
            kwargs["json"] = query.payload

        data = await self._send(method, url, **kwargs)
        if data is None:
            return []
        return data if isinstance(data, list) else [data]

    async def rpc(self, name: str, args: Optional[Row] = None) -> Any:
        return await self._send("POST", f"/rest/v1/rpc/{name}", json=args or {})

    async def invoke(self, function: str, body: Row) -> Any:
        return await self._send("POST", f"/functions/v1/{function}", json=body)

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str = "application/octet-stream") -> str:
        await self._send(
            "POST",
            f"/storage/v1/object/{bucket}/{path}",
            content=content,
            headers={"Content-Type": content_type, "x-upsert": "false"},
        )
        return path

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{path}"

    async def close(self):
        await self._client.aclose()


def build_backend() -> Backend:
    if settings.BACKEND_URL:
        logger.info(f"Backend configured for: {settings.BACKEND_URL}")
        return RestBackend(settings.BACKEND_URL, settings.BACKEND_KEY, timeout=settings.BACKEND_TIMEOUT)

    from opsconsole.db.memory import InMemoryBackend
    logger.warning("BACKEND_URL not set. Using in-memory backend; data is not persisted.")
    return InMemoryBackend()
