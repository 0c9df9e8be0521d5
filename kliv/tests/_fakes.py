# kliv/tests/_fakes.py
import json
from unittest.mock import MagicMock

import requests

from kliv.config.app_config import ClientConfig

API_ROOT = "http://test.local/api"


def make_config(**kw) -> ClientConfig:
    return ClientConfig(api_root=API_ROOT, **kw)


def make_response(
    status=200, body=None, *, text=None, content_type="application/json"
) -> requests.Response:
    r = requests.Response()
    r.status_code = status
    if text is not None:
        r._content = text.encode("utf-8")
    elif body is not None:
        r._content = json.dumps(body).encode("utf-8")
    else:
        r._content = b""
    if content_type:
        r.headers["Content-Type"] = content_type
    r.url = API_ROOT
    return r


def fake_session(*replies):
    """
    MagicMock session whose .request() hands out `replies` in order.
    Exceptions in `replies` are raised. Streamed bodies are drained first,
    the way a real transport would before reading the answer.
    """
    queue = list(replies)
    sent = []

    def _request(method, url, data=None, headers=None, timeout=None):
        if data is not None and not isinstance(data, (bytes, str)):
            data = b"".join(data)
        sent.append({"method": method, "url": url, "data": data, "headers": headers})
        item = queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    session = MagicMock(spec=requests.Session)
    session.request.side_effect = _request
    session.sent = sent
    return session
