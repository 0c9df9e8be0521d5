# kliv/config/app_config.py
from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field

DEFAULT_API_ROOT = "http://localhost:3000/api"


class ClientConfig(BaseModel):
    api_root: str = DEFAULT_API_ROOT
    # None means no client-side timeout; the transport waits for the server
    timeout: Optional[float] = None
    default_headers: Dict[str, str] = Field(default_factory=dict)
    user_agent: str = "kliv-python/0.1"
    upload_chunk_size: int = 64 * 1024

    def endpoint(self, *parts: str) -> str:
        """Join path segments onto the API root without doubling slashes."""
        base = self.api_root.rstrip("/")
        tail = "/".join(p.strip("/") for p in parts if p)
        return f"{base}/{tail}" if tail else base


def _env_overrides() -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if os.getenv("KLIV_API_ROOT"):
        out["api_root"] = os.environ["KLIV_API_ROOT"]
    if os.getenv("KLIV_TIMEOUT"):
        raw = os.environ["KLIV_TIMEOUT"].strip().lower()
        out["timeout"] = None if raw in {"none", "0", ""} else float(raw)
    if os.getenv("KLIV_USER_AGENT"):
        out["user_agent"] = os.environ["KLIV_USER_AGENT"]
    if os.getenv("KLIV_UPLOAD_CHUNK_SIZE"):
        out["upload_chunk_size"] = int(os.environ["KLIV_UPLOAD_CHUNK_SIZE"])
    return out


def load_config(path: Optional[str] = None, **overrides: Any) -> ClientConfig:
    """
    Resolve client settings. Precedence, lowest first: JSON file
    (`path` or KLIV_CONFIG_PATH), environment / .env, explicit overrides.
    """
    # We don't override existing env so container/CI secrets still win.
    load_dotenv(find_dotenv(usecwd=True), override=False)

    data: Dict[str, Any] = {}
    path = path or os.getenv("KLIV_CONFIG_PATH")
    if path:
        with open(path, "r", encoding="utf-8") as f:
            data.update(json.load(f))

    data.update(_env_overrides())
    data.update({k: v for k, v in overrides.items() if v is not None})
    return ClientConfig(**data)


def save_config(config: ClientConfig, path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config.model_dump(), f, indent=2)
