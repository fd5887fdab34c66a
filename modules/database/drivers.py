"""
Database Module for Settlement - Driver Loader
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Resolves a DB-API 2.0 driver module by name, or loads one from a file path
without adding it to ``sys.modules``, and knows how each bundled driver
turns a connection URL into a connection.

:copyright: (c) 2024-present Settlement contributors
"""

import importlib
import importlib.util
import os
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import unquote, urlsplit

from .errors import ConnectivityError

Connector = Callable[[Any, str, str, str], Any]


@dataclass
class Driver:
    """A loaded driver module plus the function that opens connections with it."""

    name: str
    module: Any
    connector: Connector

    def connect(self, url: str, user: str, password: str):
        return self.connector(self.module, url, user, password)

    @property
    def error(self) -> type:
        """The driver's base exception class (DB-API ``Error``)."""
        return getattr(self.module, 'Error', Exception)

    @property
    def paramstyle(self) -> str:
        return getattr(self.module, 'paramstyle', 'qmark')


def _split_server_url(url: str) -> Tuple[Optional[str], Optional[int], Optional[str]]:
    """Host, port and database name from ``scheme://host:port/database``."""
    parts = urlsplit(url)
    database = unquote(parts.path.lstrip('/')) or None
    return parts.hostname, parts.port, database


def sqlite_path(url: str) -> str:
    """File path from ``sqlite:path``, ``sqlite:///abs/path`` or ``sqlite::memory:``."""
    path = url[len('sqlite:'):] if url.lower().startswith('sqlite:') else url
    if path.startswith('//'):
        path = path[2:]
    return path


def _connect_mariadb(module, url: str, user: str, password: str):
    host, port, database = _split_server_url(url)
    params = {'host': host or 'localhost', 'user': user, 'password': password}
    if port:
        params['port'] = port
    if database:
        params['database'] = database
    conn = module.connect(**params)
    conn.autocommit = True
    return conn


def _connect_psycopg2(module, url: str, user: str, password: str):
    host, port, database = _split_server_url(url)
    params = {'host': host or 'localhost', 'user': user, 'password': password}
    if port:
        params['port'] = port
    if database:
        params['dbname'] = database
    conn = module.connect(**params)
    conn.autocommit = True
    return conn


def _connect_sqlite(module, url: str, user: str, password: str):
    # Credentials are meaningless for a local file
    module.register_adapter(datetime, lambda value: value.isoformat(' '))
    module.register_adapter(date, lambda value: value.isoformat())
    return module.connect(sqlite_path(url))


def _connect_generic(module, url: str, user: str, password: str):
    return module.connect(url, user=user, password=password)


_CONNECTORS: Dict[str, Connector] = {
    'mariadb': _connect_mariadb,
    'psycopg2': _connect_psycopg2,
    'sqlite3': _connect_sqlite,
}

# Drivers registered at runtime, checked before importing by name
_REGISTERED: Dict[str, Driver] = {}


def register_driver(driver: Driver) -> None:
    """Make ``driver`` loadable by its name, ahead of any importable module."""
    _REGISTERED[driver.name] = driver


def unregister_driver(name: str) -> None:
    _REGISTERED.pop(name, None)


def _load_module_from_path(name: str, path: str):
    """Execute a driver module file in its own namespace, outside ``sys.modules``."""
    if not os.path.exists(path):
        raise FileNotFoundError(path)

    module_name = f"_settlement_driver_{name.replace('.', '_')}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Not a loadable Python module: {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def load_driver(name: str, driver_path: Optional[str] = None) -> Driver:
    """
    Load the driver called ``name``.

    Args:
        name: Driver identifier, normally the DB-API module name
            (``mariadb``, ``psycopg2``, ``sqlite3``)
        driver_path: Optional path of a driver module file to load in isolation

    Raises:
        ConnectivityError: if the driver can't be found or imported
    """
    if driver_path:
        try:
            module = _load_module_from_path(name, driver_path)
        except Exception as e:
            raise ConnectivityError(
                f"Driver is unavailable: {name} from {driver_path}: {e}"
            ) from e
        if not hasattr(module, 'connect'):
            raise ConnectivityError(f"Driver module {driver_path} has no connect() function")
        return Driver(name, module, _CONNECTORS.get(name, _connect_generic))

    if name in _REGISTERED:
        return _REGISTERED[name]

    try:
        module = importlib.import_module(name)
    except ImportError as e:
        raise ConnectivityError(f"Driver is unavailable: {name}: {e}") from e

    if not hasattr(module, 'connect'):
        raise ConnectivityError(f"Driver module {name} has no connect() function")

    top_level = module.__name__.split('.')[0]
    return Driver(name, module, _CONNECTORS.get(top_level, _connect_generic))

