"""
Environment configuration loader.

Reads connection settings from the process environment (and a ``.env``
file, via ``python-dotenv``) and exposes them through a ``Settings``
dataclass.  Every variable is optional; drivers apply their own
defaults for anything left unset.

Supported variables:

* ``DB_DRIVER`` – driver name: ``pyodbc`` (default), ``pymssql`` or ``sqlite``.
* ``DB_URL`` – ADO-style connection string (``Server=host,port;Database=...``).
  Values from the individual variables below take precedence over it.
* ``DB_HOST`` / ``DB_PORT`` / ``DB_USER`` / ``DB_PASSWORD`` / ``DB_NAME``.
* ``DB_ODBC_DRIVER`` – ODBC driver name used by ``pyodbc``.
* ``DB_LOG_ERRORS`` – when truthy, handles built by the connection
  factory report errors to the ``database_helper.errors`` logger.

The resulting ``settings`` instance can be imported from
``database_helper.config``.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv
load_dotenv()

DEFAULT_ODBC_DRIVER = "ODBC Driver 17 for SQL Server"

_TRUTHY = ("true", "yes", "1", "on")

# Mapping keys accepted by ``ConnectionConfig.from_mapping``.
_KEY_ALIASES = {
    "host": "host",
    "hostname": "host",
    "user": "user",
    "username": "user",
    "password": "password",
    "database": "database",
    "port": "port",
}


def _to_port(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid port: {value!r}") from None


@dataclass
class ConnectionConfig:
    """Connection settings handed to a driver.  All fields are optional."""

    host: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None
    port: Optional[int] = None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "ConnectionConfig":
        """Build a config from a mapping, ignoring unknown keys.

        ``hostname`` and ``username`` are accepted as aliases of
        ``host`` and ``user``.

        Raises:
            ValueError: If ``port`` is not an integer.
        """
        values: Dict[str, Any] = {}
        for key, value in mapping.items():
            target = _KEY_ALIASES.get(key)
            if target is None or value is None:
                continue
            values.setdefault(target, value)
        if "port" in values:
            values["port"] = _to_port(values["port"])
        return cls(**values)

    @classmethod
    def from_connection_string(cls, input_str: str) -> "ConnectionConfig":
        """Parse an ADO-style connection string.

        Supports semicolon separated key/value pairs such as
        ``Server=db.local,1433;Database=app;UID=sa;PWD=secret``.  A port
        can be given either as ``Server=host,port`` or ``Port=``.

        Raises:
            ValueError: If the string is empty or names no server.
        """
        s = (input_str or "").strip()
        if not s:
            raise ValueError("Empty connection string")
        parts = [p.strip() for p in s.split(";") if p.strip()]
        kv: Dict[str, str] = {}
        for p in parts:
            if '=' not in p:
                continue
            k, v = p.split('=', 1)
            kv[k.strip().lower()] = v.strip()
        server_raw = kv.get('server') or kv.get('data source') or kv.get('address') or kv.get('addr') or kv.get('host')
        if not server_raw:
            raise ValueError('No Server= found in connection string')
        server = server_raw
        port = _to_port(kv.get('port'))
        m = re.match(r"^(.*?),(\d+)$", server_raw)
        if m:
            server = m.group(1)
            port = int(m.group(2))
        return cls(
            host=server,
            user=kv.get('uid') or kv.get('user id') or kv.get('user'),
            password=kv.get('pwd') or kv.get('password'),
            database=kv.get('database') or kv.get('initial catalog'),
            port=port,
        )

    def merged(self, other: "ConnectionConfig") -> "ConnectionConfig":
        """Return a copy where fields set on ``other`` override ours."""
        return ConnectionConfig(
            host=other.host if other.host is not None else self.host,
            user=other.user if other.user is not None else self.user,
            password=other.password if other.password is not None else self.password,
            database=other.database if other.database is not None else self.database,
            port=other.port if other.port is not None else self.port,
        )


@dataclass
class Settings:
    """Holds environment configuration for the application."""

    DB_DRIVER: str = "pyodbc"
    DB_ODBC_DRIVER: str = DEFAULT_ODBC_DRIVER
    DB_LOG_ERRORS: bool = False
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)


def _load_env(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Load settings from environment variables.

    Raises:
        ValueError: If ``DB_URL`` or ``DB_PORT`` cannot be parsed.

    Returns:
        Settings: A populated settings dataclass.
    """
    env = os.environ if environ is None else environ

    base = ConnectionConfig()
    url = env.get("DB_URL")
    if url:
        base = ConnectionConfig.from_connection_string(url)
    explicit = ConnectionConfig.from_mapping({
        "host": env.get("DB_HOST") or None,
        "user": env.get("DB_USER") or None,
        "password": env.get("DB_PASSWORD") or None,
        "database": env.get("DB_NAME") or None,
        "port": env.get("DB_PORT") or None,
    })

    return Settings(
        DB_DRIVER=env.get("DB_DRIVER", "pyodbc"),
        DB_ODBC_DRIVER=env.get("DB_ODBC_DRIVER", DEFAULT_ODBC_DRIVER),
        DB_LOG_ERRORS=env.get("DB_LOG_ERRORS", "").lower() in _TRUTHY,
        connection=base.merged(explicit),
    )


# Create a single settings instance when this module is imported.
settings: Settings = _load_env()
