# kliv/client.py
from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from kliv.config.app_config import ClientConfig, load_config
from kliv.resources.auth import AuthClient, SessionCache
from kliv.resources.content import ContentClient
from kliv.resources.database import DatabaseClient
from kliv.resources.functions import FunctionsClient

logger = logging.getLogger("kliv")


class KlivClient:
    """
    Build once at startup and hand to whatever needs backend access:

        client = KlivClient(load_config())
        client.auth.sign_in("a@b.c", "pw")
        posts = client.db.query("posts", {"_deleted": "eq.0"})

    All four resource clients share one requests.Session, so the session
    cookie set by sign_in travels with database, content and function
    calls, and one SessionCache.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config or ClientConfig()
        self._owns_session = session is None
        self.session = session or requests.Session()
        if self._owns_session:
            self.session.headers["User-Agent"] = self.config.user_agent

        self.session_cache = SessionCache()
        self.db = DatabaseClient(self.config, self.session)
        self.auth = AuthClient(self.config, self.session, self.session_cache)
        self.content = ContentClient(self.config, self.session)
        self.functions = FunctionsClient(self.config, self.session)
        logger.debug("client ready api_root=%s", self.config.api_root)

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def __enter__(self) -> "KlivClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def create_client(
    api_root: Optional[str] = None,
    session: Optional[requests.Session] = None,
    **overrides: Any,
) -> KlivClient:
    """Resolve configuration from file/.env/environment and build a client."""
    config = load_config(api_root=api_root, **overrides)
    return KlivClient(config, session=session)
