from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union
from datetime import datetime, timezone
import copy
import inspect
import logging
import re
import uuid

from opsconsole.core.errors import BackendError
from opsconsole.db.backend import Backend, Condition, Query, Row

logger = logging.getLogger(__name__)

Handler = Callable[[Row], Union[Any, Awaitable[Any]]]

# In-process stand-in for the hosted backend.
# Structure: { table_name: [row, ...] }, rows are plain dicts keyed by column name.
# Used when BACKEND_URL is unset and as the test double.


def _ilike_regex(pattern: str) -> "re.Pattern":
    parts = []
    escaped = False
    for ch in pattern:
        if escaped:
            parts.append(re.escape(ch))
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def _matches(row: Row, condition: Condition) -> bool:
    column, op, expected = condition
    actual = row.get(column)
    if op == "eq":
        return actual == expected
    if op == "neq":
        return actual != expected
    if op == "in":
        return actual in expected
    if op == "ilike":
        return actual is not None and bool(_ilike_regex(expected).match(str(actual)))
    if actual is None:
        return False
    try:
        if op == "gte":
            return actual >= expected
        if op == "lte":
            return actual <= expected
    except TypeError:
        return False
    raise BackendError(f"Unsupported filter operator: {op}")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryBackend(Backend):
    def __init__(self, tables: Optional[Dict[str, List[Row]]] = None):
        self.tables: Dict[str, List[Row]] = {name: [dict(r) for r in rows] for name, rows in (tables or {}).items()}
        self.storage: Dict[str, Dict[str, bytes]] = {}
        self.calls: List[Tuple[str, str]] = []
        self._rpc_handlers: Dict[str, Handler] = {}
        self._function_handlers: Dict[str, Handler] = {}
        self._failures: Dict[Tuple[str, str], Tuple[int, BackendError]] = {}

    # Test and development hooks
    def register_rpc(self, name: str, handler: Handler):
        self._rpc_handlers[name] = handler

    def register_function(self, name: str, handler: Handler):
        self._function_handlers[name] = handler

    def fail_next(self, action: str, target: str, message: str, code: Optional[str] = None, skip: int = 0):
        """Make the next `action` against `target` (table, rpc or function name) fail once, after `skip` successful calls."""
        self._failures[(action, target)] = (skip, BackendError(message, code=code))

    def rows(self, table: str) -> List[Row]:
        return self.tables.setdefault(table, [])

    def seed(self, table: str, *rows: Row) -> List[Row]:
        stored = [self._prepare_insert(r) for r in rows]
        self.rows(table).extend(stored)
        return [dict(r) for r in stored]

    def called(self, action: str, target: str) -> bool:
        return (action, target) in self.calls

    def _record(self, action: str, target: str):
        self.calls.append((action, target))
        pending = self._failures.get((action, target))
        if pending is None:
            return
        skip, failure = pending
        if skip > 0:
            self._failures[(action, target)] = (skip - 1, failure)
            return
        del self._failures[(action, target)]
        raise failure

    def _prepare_insert(self, row: Row) -> Row:
        stored = copy.deepcopy(row)
        stored.setdefault("id", str(uuid.uuid4()))
        stored.setdefault("created_at", _now_iso())
        return stored

    def _select_rows(self, query: Query) -> List[Row]:
        rows = [r for r in self.rows(query.table) if all(_matches(r, c) for c in query.filters)]
        for group in query.or_groups:
            rows = [r for r in rows if any(_matches(r, c) for c in group)]
        return rows

    async def execute(self, query: Query) -> List[Row]:
        self._record(query.action, query.table)
        table = self.rows(query.table)

        if query.action == "insert":
            payload = query.payload if isinstance(query.payload, list) else [query.payload]
            stored = [self._prepare_insert(r) for r in payload]
            table.extend(stored)
            return [copy.deepcopy(r) for r in stored]

        if query.action == "upsert":
            payload = query.payload if isinstance(query.payload, list) else [query.payload]
            keys = [k.strip() for k in (query.on_conflict or "id").split(",")]
            result = []
            for row in payload:
                existing = next((r for r in table if all(r.get(k) == row.get(k) for k in keys)), None)
                if existing is not None:
                    existing.update(copy.deepcopy(row))
                    result.append(copy.deepcopy(existing))
                else:
                    stored = self._prepare_insert(row)
                    table.append(stored)
                    result.append(copy.deepcopy(stored))
            return result

        matched = self._select_rows(query)

        if query.action == "update":
            for row in matched:
                row.update(copy.deepcopy(query.payload))
            return [copy.deepcopy(r) for r in matched]

        if query.action == "delete":
            ids = {id(r) for r in matched}
            self.tables[query.table] = [r for r in table if id(r) not in ids]
            return [copy.deepcopy(r) for r in matched]

        for column, desc in reversed(query.orders):
            matched = sorted(
                matched,
                key=lambda r, c=column: (r.get(c) is None, r.get(c) if r.get(c) is not None else 0),
                reverse=desc,
            )
        if query.limit_count is not None:
            matched = matched[: query.limit_count]

        if query.columns == "*" or "(" in query.columns:
            return [copy.deepcopy(r) for r in matched]
        wanted = [c.strip() for c in query.columns.split(",") if c.strip()]
        return [{c: copy.deepcopy(r.get(c)) for c in wanted} for r in matched]

    async def _call(self, kind: str, handlers: Dict[str, Handler], name: str, body: Row) -> Any:
        self._record(kind, name)
        handler = handlers.get(name)
        if handler is None:
            raise BackendError(f"Could not find the function {name}", code="PGRST202")
        result = handler(body)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def rpc(self, name: str, args: Optional[Row] = None) -> Any:
        return await self._call("rpc", self._rpc_handlers, name, args or {})

    async def invoke(self, function: str, body: Row) -> Any:
        return await self._call("invoke", self._function_handlers, function, body)

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str = "application/octet-stream") -> str:
        self._record("upload", bucket)
        objects = self.storage.setdefault(bucket, {})
        if path in objects:
            raise BackendError("The resource already exists", code="409")
        objects[path] = content
        return path

    def public_url(self, bucket: str, path: str) -> str:
        return f"memory://{bucket}/{path}"
