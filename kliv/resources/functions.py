# kliv/resources/functions.py
from __future__ import annotations

import json
import logging
import urllib.parse
from typing import Any, Dict, Mapping, Optional

import requests

from kliv.config.app_config import ClientConfig
from kliv.errors import FunctionError, error_message
from kliv.http.client import JsonRequester, build_query, is_success
from kliv.http.headers import decode_text, is_json_content_type

logger = logging.getLogger("kliv.functions")

_FALLBACK = "Function invocation failed"


class FunctionsClient:
    """
    Invokes named remote functions at /v2/function/<name>.

    Unlike the database client the verb is free, responses may be plain
    text, and session cookies from the shared requests.Session go out
    with every call.
    """

    def __init__(
        self,
        config: ClientConfig,
        session: requests.Session,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.headers = {**config.default_headers, **(headers or {})}
        self._req = JsonRequester(
            session,
            config.endpoint("v2", "function"),
            error_cls=FunctionError,
            timeout=config.timeout,
            log=logger,
        )

    def invoke(
        self,
        name: str,
        data: Any = None,
        *,
        method: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        method = (method or ("POST" if data is not None else "GET")).upper()
        url = f"{self._req.base_url}/{urllib.parse.quote(name, safe='/')}"
        if query:
            url += "?" + build_query(query)

        hdrs = {**self.headers, **(headers or {})}
        body = None
        if data is not None and method != "GET":
            hdrs["Content-Type"] = "application/json"
            body = json.dumps(data, ensure_ascii=False).encode("utf-8")

        resp = self._req.send(method, url, data=body, headers=hdrs)
        ctype = resp.headers.get("Content-Type")

        if not is_success(resp.status_code):
            try:
                details = json.loads(decode_text(resp.content or b"", ctype))
            except ValueError:
                details = {"error": _FALLBACK, "status": resp.status_code}
            msg = error_message(details, _FALLBACK, keys=("error", "message"))
            logger.warning("function %s -> %d: %s", name, resp.status_code, msg)
            raise FunctionError(msg, status=resp.status_code, details=details)

        text = decode_text(resp.content or b"", ctype)
        if not is_json_content_type(ctype):
            return text
        try:
            return json.loads(text)
        except ValueError:
            return text

    def get(self, name: str, query: Optional[Mapping[str, Any]] = None) -> Any:
        return self.invoke(name, None, method="GET", query=query or {})

    def post(self, name: str, data: Any) -> Any:
        return self.invoke(name, data, method="POST")

    def put(self, name: str, data: Any) -> Any:
        return self.invoke(name, data, method="PUT")

    def delete(self, name: str, data: Any = None) -> Any:
        return self.invoke(name, data, method="DELETE")
