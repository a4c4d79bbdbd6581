from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger("tabwright.connection")

CONFIG_FILE_PREFIX = ".tabwright-config-"


@dataclass(frozen=True)
class ChromeConnection:
    """How to reach a running browser: its browser-level DevTools WebSocket URL."""

    web_socket_url: str

    def encode(self) -> str:
        return json.dumps({"web_socket_url": self.web_socket_url})

    @classmethod
    def decode(cls, raw: str | bytes) -> ChromeConnection:
        data: Any = json.loads(raw)
        if not isinstance(data, dict) or not isinstance(data.get("web_socket_url"), str):
            raise ValueError("connection file is missing web_socket_url")
        return cls(web_socket_url=data["web_socket_url"])


def config_path(process: int, config_dir: str = ".") -> Path:
    return Path(config_dir) / f"{CONFIG_FILE_PREFIX}{process}"


def write_connection(conn: ChromeConnection, process: int, config_dir: str = ".") -> Path:
    path = config_path(process, config_dir)
    path.write_text(conn.encode(), encoding="utf-8")
    logger.debug("wrote connection file %s", path)
    return path


def read_connection(process: int, config_dir: str = ".") -> ChromeConnection:
    """Read this process's connection file, falling back to process 1's.

    Raises FileNotFoundError when neither exists.
    """
    path = config_path(process, config_dir)
    if not path.exists():
        path = config_path(1, config_dir)
    return ChromeConnection.decode(path.read_text(encoding="utf-8"))


def remove_connection(process: int, config_dir: str = ".") -> None:
    config_path(process, config_dir).unlink(missing_ok=True)


__all__ = [
    "CONFIG_FILE_PREFIX",
    "ChromeConnection",
    "config_path",
    "read_connection",
    "remove_connection",
    "write_connection",
]
