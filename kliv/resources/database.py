# kliv/resources/database.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import requests

from kliv.config.app_config import ClientConfig
from kliv.errors import ArgumentError, RequestError
from kliv.http.client import JsonRequester

logger = logging.getLogger("kliv.database")


def _require_table(table: Any) -> str:
    if not table or not isinstance(table, str):
        raise ArgumentError("Table name is required")
    return table


def _log_event(action: str, table: str, extra: dict | None = None) -> None:
    payload = {"action": action, "table": table, **(extra or {})}
    logger.info("db.%s %s", action, table, extra={"event": payload})


class DatabaseClient:
    """
    Table-style CRUD over the PostgREST-compatible proxy at /v2/database.

    Filtering, ordering and paging are never done locally; they travel as
    query params the server understands:

        db.query("posts", {"_deleted": "eq.0", "order": "_created_at.desc"})
        db.update("posts", {"_row_id": "eq.42"}, {"status": "flagged"})
    """

    def __init__(self, config: ClientConfig, session: requests.Session) -> None:
        self._req = JsonRequester(
            session,
            config.endpoint("v2", "database"),
            error_cls=RequestError,
            timeout=config.timeout,
            default_headers=config.default_headers,
            log=logger,
        )

    def list_tables(self) -> List[str]:
        data = self._req.request("GET")
        if isinstance(data, dict):
            return data.get("tables") or []
        return []

    def query(self, table: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        _require_table(table)
        return self._req.request("GET", table, params or {})

    def get(self, table: str, row_id: Any) -> Optional[Dict[str, Any]]:
        results = self.query(table, {"_row_id": f"eq.{row_id}"})
        if isinstance(results, list) and results:
            return results[0]
        return None

    def insert(self, table: str, data: Any) -> Any:
        _require_table(table)
        _log_event("insert", table)
        return self._req.request("POST", table, {}, data)

    def update(self, table: str, params: Optional[Mapping[str, Any]], data: Any) -> Any:
        _require_table(table)
        _log_event("update", table, {"filters": list((params or {}).keys())})
        return self._req.request("PUT", table, params or {}, data)

    def delete(self, table: str, params: Optional[Mapping[str, Any]]) -> Any:
        _require_table(table)
        if not params:
            raise ArgumentError("Filters required for delete (safety)")
        _log_event("delete", table, {"filters": list(params.keys())})
        return self._req.request("DELETE", table, params)

    def count(self, table: str, params: Optional[Mapping[str, Any]] = None) -> int:
        result = self.query(table, {**(params or {}), "select": "count"})
        # PostgREST may answer with a single aggregate row instead of an object
        if isinstance(result, list) and len(result) == 1:
            result = result[0]
        if isinstance(result, dict):
            return result.get("count") or 0
        return 0
