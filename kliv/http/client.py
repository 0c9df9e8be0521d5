# kliv/http/client.py
from __future__ import annotations

import json
import logging
import mimetypes
import time
import urllib.parse
import uuid
from typing import Any, Dict, Mapping, Optional, Type

import requests

from kliv.errors import KlivError, RequestError, error_message
from kliv.http.headers import decode_text
from kliv.logging_utils import current_correlation_id

logger = logging.getLogger("kliv.http")


# ---- url / query builders ----


def stringify_param(value: Any) -> str:
    # match the wire format browsers produce for String(true)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_query(params: Mapping[str, Any] | None) -> str:
    """
    Encode params in insertion order. None values are dropped, never sent
    as empty strings; repeated keys are not merged.
    """
    if not params:
        return ""
    pairs = [(k, stringify_param(v)) for k, v in params.items() if v is not None]
    return urllib.parse.urlencode(pairs)


def build_url(
    base: str,
    resource: str | None = None,
    params: Mapping[str, Any] | None = None,
    *,
    quote_resource: bool = True,
) -> str:
    url = base
    if resource:
        name = urllib.parse.quote(str(resource), safe="") if quote_resource else resource
        url = f"{base.rstrip('/')}/{name}"
    qs = build_query(params)
    return f"{url}?{qs}" if qs else url


def is_success(status: int) -> bool:
    return 200 <= status < 300


# ---- multipart ----


def _guess_ct(filename: str | None, fallback: str = "application/octet-stream") -> str:
    if not filename:
        return fallback
    ctype, _ = mimetypes.guess_type(filename)
    return ctype or fallback


def encode_multipart(form: dict | None, files: list[dict]) -> tuple[bytes, dict]:
    """
    Encode multipart/form-data body.

    files: [
      {"name":"file", "filename":"a.png", "content": b"...", "content_type":"image/png"},
      ...
    ]
    Form fields come first, in the order given.
    """
    boundary = f"----kliv-{uuid.uuid4().hex}"
    CRLF = b"\r\n"
    out = bytearray()

    if form:
        for k, v in form.items():
            out += b"--" + boundary.encode() + CRLF
            out += f'Content-Disposition: form-data; name="{k}"'.encode() + CRLF
            out += b"Content-Type: text/plain; charset=utf-8" + CRLF + CRLF
            out += (str(v)).encode("utf-8") + CRLF

    for f in files:
        name = f.get("name")
        if not name:
            raise ValueError("files[].name is required")

        content = f.get("content")
        if isinstance(content, str):
            content = content.encode("utf-8")
        elif isinstance(content, (bytes, bytearray)):
            content = bytes(content)
        elif content is None:
            # allow empty file
            content = b""

        filename = f.get("filename") or "upload.bin"
        ctype = f.get("content_type") or _guess_ct(filename)

        out += b"--" + boundary.encode() + CRLF
        out += (
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"'
        ).encode() + CRLF
        out += f"Content-Type: {ctype}".encode() + CRLF + CRLF
        out += content + CRLF

    out += b"--" + boundary.encode() + b"--" + CRLF
    return bytes(out), {"Content-Type": f"multipart/form-data; boundary={boundary}"}


# ---- request executor ----


class JsonRequester:
    """
    One outbound call against a fixed base path, normalized for the
    resource clients:

        req = JsonRequester(session, "https://host/api/v2/database")
        rows = req.request("GET", "posts", {"status": "eq.active"})

    Non-2xx responses and transport failures raise `error_cls`.
    """

    def __init__(
        self,
        session: requests.Session,
        base_url: str,
        *,
        error_cls: Type[KlivError] = RequestError,
        timeout: Optional[float] = None,
        default_headers: Optional[Dict[str, str]] = None,
        log: Optional[logging.Logger] = None,
        quote_resource: bool = True,
    ) -> None:
        self.session = session
        self.base_url = base_url
        self.error_cls = error_cls
        self.timeout = timeout
        self.default_headers = dict(default_headers or {})
        self.log = log or logger
        self.quote_resource = quote_resource

    def url(
        self, resource: str | None = None, params: Mapping[str, Any] | None = None
    ) -> str:
        return build_url(
            self.base_url, resource, params, quote_resource=self.quote_resource
        )

    def _headers(self, extra: Optional[Mapping[str, str]]) -> Dict[str, str]:
        headers = dict(self.default_headers)
        cid = current_correlation_id()
        if cid:
            headers.setdefault("X-Correlation-ID", cid)
        if extra:
            headers.update(extra)
        return headers

    def send(
        self,
        method: str,
        url: str,
        *,
        data: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> requests.Response:
        """Issue the call and return the raw response, whatever its status."""
        method = method.upper()
        path = urllib.parse.urlparse(url).path
        self.log.debug(">> %s %s", method, path)
        t0 = time.perf_counter()
        try:
            resp = self.session.request(
                method,
                url,
                data=data,
                headers=self._headers(headers),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            self.log.warning("!! %s %s transport error: %s", method, path, e)
            raise self.error_cls(f"{method} request failed: {e}") from e
        dur_ms = int((time.perf_counter() - t0) * 1000)
        self.log.debug("<< %s %s %d %dms", method, path, resp.status_code, dur_ms)
        return resp

    def request(
        self,
        method: str,
        resource: str | None = None,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        *,
        fallback: Optional[str] = None,
    ) -> Any:
        method = method.upper()
        headers = {"Accept": "application/json"}
        data = None
        if body is not None:
            headers["Content-Type"] = "application/json"
            data = json.dumps(body, ensure_ascii=False).encode("utf-8")

        resp = self.send(method, self.url(resource, params), data=data, headers=headers)
        return self.decode(resp, method, fallback=fallback)

    def decode(
        self, resp: requests.Response, method: str, *, fallback: Optional[str] = None
    ) -> Any:
        """Return the JSON body of a 2xx response or raise `error_cls`."""
        fallback = fallback or f"{method} request failed"
        if not is_success(resp.status_code):
            payload = _try_json(resp)
            msg = error_message(payload, fallback)
            self.log.warning("%s %s -> %d: %s", method, resp.url, resp.status_code, msg)
            raise self.error_cls(msg, status=resp.status_code, details=payload)

        if resp.status_code == 204:
            return None
        try:
            return json.loads(decode_text(resp.content, resp.headers.get("Content-Type")))
        except ValueError as e:
            raise self.error_cls(
                "Invalid JSON response", status=resp.status_code, details=resp.text
            ) from e


def _try_json(resp: requests.Response) -> Any:
    try:
        return json.loads(decode_text(resp.content or b"", resp.headers.get("Content-Type")))
    except ValueError:
        return None
