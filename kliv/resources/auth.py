# kliv/resources/auth.py
from __future__ import annotations

import json
import logging
import threading
import urllib.parse
from typing import Any, Dict, Optional

import requests

from kliv.config.app_config import ClientConfig
from kliv.errors import AuthError
from kliv.http.client import JsonRequester, is_success

logger = logging.getLogger("kliv.auth")


class SessionCache:
    """
    Single-slot holder for the signed-in user. Writes replace the whole
    value; concurrent writers race and the last one wins.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._user: Optional[Dict[str, Any]] = None

    def get(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._user

    def set(self, user: Optional[Dict[str, Any]]) -> None:
        with self._lock:
            self._user = user

    def clear(self) -> None:
        self.set(None)

    @property
    def authenticated(self) -> bool:
        return self.get() is not None


def _user_of(data: Any) -> Optional[Dict[str, Any]]:
    if isinstance(data, dict):
        return data.get("user")
    return None


class AuthClient:
    def __init__(
        self,
        config: ClientConfig,
        session: requests.Session,
        cache: Optional[SessionCache] = None,
    ) -> None:
        self._req = JsonRequester(
            session,
            config.endpoint("v2", "auth"),
            error_cls=AuthError,
            timeout=config.timeout,
            default_headers=config.default_headers,
            log=logger,
            # action paths are fixed; user uuids are quoted in _user_path
            quote_resource=False,
        )
        self.cache = cache if cache is not None else SessionCache()

    # ---- session ----

    def sign_up(
        self,
        email: str,
        password: str,
        name: Optional[str] = None,
        locale: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        body: Dict[str, Any] = {"email": email, "password": password}
        if name:
            body["name"] = name
        if locale:
            body["locale"] = locale
        if metadata:
            body["metadata"] = metadata

        data = self._req.request("POST", "signup", body=body, fallback="Signup failed")
        user = _user_of(data)
        self.cache.set(user)
        logger.info("signed up %s", email)
        return user

    def sign_in(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        data = self._req.request(
            "POST",
            "signin",
            body={"email": email, "password": password},
            fallback="Sign in failed",
        )
        user = _user_of(data)
        self.cache.set(user)
        logger.info("signed in %s", email)
        return user

    def sign_out(self) -> None:
        """Best-effort: the cache is cleared whatever the server says."""
        try:
            resp = self._req.send(
                "POST",
                self._req.url("signout"),
                data=b"{}",
                headers={"Content-Type": "application/json"},
            )
            if not is_success(resp.status_code):
                logger.warning("signout returned %d", resp.status_code)
        except AuthError as e:
            logger.warning("signout failed: %s", e)
        finally:
            self.cache.clear()

    def get_user(self, force_refresh: bool = False) -> Optional[Dict[str, Any]]:
        cached = self.cache.get()
        if not force_refresh and cached is not None:
            return cached

        resp = self._req.send("GET", self._req.url("user"))
        if not is_success(resp.status_code):
            # signed out is a normal state, not an error
            self.cache.clear()
            return None

        user = _user_of(self._req.decode(resp, "GET"))
        self.cache.set(user)
        return user

    def update_user(self, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        data = self._req.request("PUT", "user", body=updates, fallback="Update failed")
        user = _user_of(data)
        self.cache.set(user)
        return user

    @property
    def is_signed_in(self) -> bool:
        return self.cache.authenticated

    # ---- password reset ----

    def request_password_reset(self, email: str) -> Any:
        return self._req.request(
            "POST",
            "password-reset",
            body={"email": email},
            fallback="Password reset request failed",
        )

    def complete_password_reset(self, token: str, password: str) -> Any:
        return self._req.request(
            "POST",
            "password-reset-complete",
            body={"token": token, "password": password},
            fallback="Password reset failed",
        )

    # ---- administration (caller gates access) ----

    def list_users(
        self,
        start_row: Optional[int] = None,
        end_row: Optional[int] = None,
        search: Any = None,
    ) -> Any:
        params: Dict[str, Any] = {"startRow": start_row, "endRow": end_row}
        if search:
            params["search"] = json.dumps(search, ensure_ascii=False)
        return self._req.request("GET", "users", params, fallback="Failed to list users")

    def get_user_by_uuid(self, user_uuid: str) -> Any:
        return self._req.request(
            "GET", self._user_path(user_uuid), fallback="Failed to get user"
        )

    def update_user_by_uuid(self, user_uuid: str, updates: Dict[str, Any]) -> Any:
        return self._req.request(
            "PUT",
            self._user_path(user_uuid),
            body=updates,
            fallback="Failed to update user",
        )

    def delete_user(self, user_uuid: str) -> Any:
        return self._req.request(
            "DELETE", self._user_path(user_uuid), fallback="Failed to delete user"
        )

    def list_groups(self) -> Any:
        return self._req.request("GET", "groups", fallback="Failed to list groups")

    @staticmethod
    def _user_path(user_uuid: str) -> str:
        return "users/" + urllib.parse.quote(str(user_uuid), safe="")

    # older method names
    def create_user(self, *args: Any, **kwargs: Any) -> Optional[Dict[str, Any]]:
        return self.sign_up(*args, **kwargs)

    def get_current_user(self, force_refresh: bool = False) -> Optional[Dict[str, Any]]:
        return self.get_user(force_refresh)
