# kliv/resources/content.py
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, List, Optional, Tuple

import requests

from kliv.config.app_config import ClientConfig
from kliv.errors import ArgumentError, RequestError, UploadError, error_message
from kliv.http.client import JsonRequester, encode_multipart
from kliv.http.headers import decode_text
from kliv.models.records import UploadProgress

logger = logging.getLogger("kliv.content")

ROOT = "/content/"
DEFAULT_DIRECTORY = "/content/uploads/"

ProgressCallback = Callable[[UploadProgress], None]


def normalize_path(path: Optional[str]) -> str:
    """
    Map any user-supplied path onto the /content/ tree:

        ""                       -> "/content/"
        "/content/uploads/x.png" -> unchanged
        "content/uploads/x.png"  -> "/content/uploads/x.png"
        "/uploads/x.png"         -> "/content/uploads/x.png"
        "uploads/x.png"          -> "/content/uploads/x.png"
    """
    if not path:
        return ROOT
    path = path.strip()
    if path.startswith(ROOT):
        return path
    if path.startswith(ROOT[1:]):
        return "/" + path
    if path.startswith("/"):
        return ROOT.rstrip("/") + path
    return ROOT + path


def resolve_content_url(result: Any) -> Optional[str]:
    """First non-empty URL-ish value in an upload result, in fixed priority."""
    if not result:
        return None
    if isinstance(result, str):
        return result
    if not isinstance(result, dict):
        return None
    for key in ("contentUrl", "url", "fileUrl", "path"):
        if result.get(key):
            return result[key]
    inner = result.get("data")
    if isinstance(inner, dict):
        for key in ("contentUrl", "url", "path"):
            if inner.get(key):
                return inner[key]
    return None


class _Cancelled(Exception):
    pass


class _ProgressBody:
    """
    Iterable request body: requests streams it chunk by chunk, which gives
    us a progress hook and a place to honour cancellation. __len__ keeps
    Content-Length set instead of falling back to chunked encoding.
    """

    def __init__(
        self,
        payload: bytes,
        chunk_size: int,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.payload = payload
        self.chunk_size = max(1, int(chunk_size))
        self.on_progress = on_progress
        self.cancel = cancel

    def __len__(self) -> int:
        return len(self.payload)

    def __iter__(self) -> Iterator[bytes]:
        total = len(self.payload)
        loaded = 0
        for start in range(0, total, self.chunk_size):
            if self.cancel is not None and self.cancel.is_set():
                raise _Cancelled()
            piece = self.payload[start : start + self.chunk_size]
            yield piece
            loaded += len(piece)
            if self.on_progress:
                self.on_progress(UploadProgress(loaded=loaded, total=total))


def _read_file(file: Any, filename: Optional[str]) -> Tuple[bytes, Optional[str]]:
    """
    Accepts:
      - str / Path         -> read from disk
      - bytes / bytearray  -> sent as-is
      - (filename, bytes)  -> named payload
      - binary file object -> .read(), name taken from .name when present
    """
    if isinstance(file, tuple) and len(file) == 2:
        name, content = file
        return _read_file(content, filename or name)
    if isinstance(file, (str, Path)):
        p = Path(file)
        if not p.is_file():
            raise ArgumentError(f"file not found or not a file: {file}")
        return p.read_bytes(), filename or p.name
    if isinstance(file, (bytes, bytearray)):
        return bytes(file), filename
    if hasattr(file, "read"):
        data = file.read()
        if isinstance(data, str):
            data = data.encode("utf-8")
        name = getattr(file, "name", None)
        if not filename and isinstance(name, str):
            filename = Path(name).name
        return data, filename
    raise ArgumentError(f"Unsupported file type: {type(file).__name__}")


class ContentClient:
    """File storage at /v2/content. Every path argument goes through normalize_path."""

    def __init__(self, config: ClientConfig, session: requests.Session) -> None:
        self.chunk_size = config.upload_chunk_size
        self._req = JsonRequester(
            session,
            config.endpoint("v2", "content"),
            error_cls=RequestError,
            timeout=config.timeout,
            default_headers=config.default_headers,
            log=logger,
            quote_resource=False,
        )

    def list_files(self, prefix: Optional[str] = None) -> Any:
        params = {"prefix": normalize_path(prefix)} if prefix else {}
        return self._req.request("GET", None, params, fallback="Failed to list files")

    def delete_file(self, path: str) -> Any:
        return self._req.request(
            "DELETE", None, {"path": normalize_path(path)}, fallback="Delete failed"
        )

    def move_file(self, old_path: str, new_path: str) -> Any:
        body = {"oldPath": normalize_path(old_path), "newPath": normalize_path(new_path)}
        return self._req.request("POST", "move", body=body, fallback="Move failed")

    def upload_file(
        self,
        file: Any,
        directory: str = DEFAULT_DIRECTORY,
        *,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Any:
        """
        Multipart upload of one file. Progress is reported per streamed
        chunk; setting `cancel` aborts the transfer. Resolves with the
        server's metadata for the new object (see resolve_content_url).
        """
        target = normalize_path(directory)
        content, filename = _read_file(file, filename)
        payload, hdrs = encode_multipart(
            {"directory": target},
            [
                {
                    "name": "file",
                    "filename": filename,
                    "content": content,
                    "content_type": content_type,
                }
            ],
        )

        if cancel is not None and cancel.is_set():
            raise UploadError("Upload cancelled")

        body = _ProgressBody(payload, self.chunk_size, on_progress, cancel)
        try:
            resp = self._req.send("POST", self._req.url(), data=body, headers=hdrs)
        except _Cancelled:
            logger.info("upload of %s cancelled", filename)
            raise UploadError("Upload cancelled") from None
        except RequestError as e:
            raise UploadError("Network error") from e

        # no abort hook once the body is sent; drop the answer instead
        if cancel is not None and cancel.is_set():
            raise UploadError("Upload cancelled", status=resp.status_code)

        text = decode_text(resp.content or b"", resp.headers.get("Content-Type"))
        if resp.status_code != 200:
            try:
                details = json.loads(text)
            except ValueError:
                raise UploadError(
                    f"Upload failed with status {resp.status_code}",
                    status=resp.status_code,
                    details=text,
                ) from None
            raise UploadError(
                error_message(details, "Upload failed", keys=("message",)),
                status=resp.status_code,
                details=details,
            )

        try:
            result = json.loads(text)
        except ValueError as e:
            raise UploadError("Invalid JSON response", status=200, details=text) from e
        logger.info("uploaded %s to %s", filename or "upload.bin", target)
        return result

    def upload_from_input(
        self, file: Any, directory: str = DEFAULT_DIRECTORY, **options: Any
    ) -> Any:
        return self.upload_file(file, directory, **options)

    def upload_multiple(
        self,
        files: Iterable[Any],
        directory: str = DEFAULT_DIRECTORY,
        *,
        on_file_progress: Optional[Callable[[Any, UploadProgress], None]] = None,
        on_complete: Optional[Callable[[Any, Any], None]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> List[Any]:
        """
        Upload one file at a time, in order. The first failure stops the
        batch: the raised UploadError carries the results collected so far
        and later files are never attempted.
        """
        results: List[Any] = []
        for file in files:
            if cancel is not None and cancel.is_set():
                raise UploadError("Upload cancelled", results=results)

            def _progress(progress: UploadProgress, _file: Any = file) -> None:
                if on_file_progress:
                    on_file_progress(_file, progress)

            try:
                result = self.upload_file(
                    file, directory, on_progress=_progress, cancel=cancel
                )
            except UploadError as e:
                e.results = list(results)
                raise

            results.append(result)
            if on_complete:
                on_complete(file, result)
        return results
