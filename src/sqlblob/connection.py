"""
Connection to the MySQL server holding the text table.

``conn()`` returns a connection shared by the whole process, configured from
``config["database.*"]``; Connection objects can also be created directly, e.g.
one per database when several row stores are served by one process.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any

import pymysql as client

from . import errors
from .settings import config
from .version import __version__


logger = logging.getLogger(__name__.split(".")[0])
QUERY_LOG_MAX_LENGTH = 300

# client error codes meaning the server connection is gone
LOST_CONNECTION = {
    0: "Server connection lost due to an interface error",
    2006: "MySQL server has gone away",
    2013: "Lost connection to MySQL server during query",
}
QUERY_ERRORS = {
    1044: errors.AccessDeniedError,
    1142: errors.AccessDeniedError,
    1062: errors.DuplicateError,
    1064: errors.QuerySyntaxError,
    1146: errors.MissingTableError,
}


def translate_query_error(client_error: Exception, query: str) -> Exception:
    """
    Map a pymysql error onto the sqlblob exception hierarchy.

    :param client_error: the error raised by pymysql
    :param query: the query that caused it, with placeholders
    :return: the sqlblob exception, or client_error itself when it has no counterpart
    """
    code, *args = client_error.args or (None,)
    logger.debug(f"Client error {code}: {args}")
    if code == "(0, '')":
        code = 0
    if code in LOST_CONNECTION:
        return errors.LostConnectionError(LOST_CONNECTION[code], *args)
    error_class = QUERY_ERRORS.get(code)
    if error_class is None:
        return client_error
    return error_class(*args, query)


def conn(
    host: str | None = None,
    user: str | None = None,
    password: str | None = None,
    *,
    database: str | None = None,
    reset: bool = False,
    use_tls: bool | dict[str, Any] | None = None,
) -> Connection:
    """
    The connection shared by all modules, created on first use.

    Arguments left out are taken from ``config["database.*"]``.

    :param reset: replace the shared connection with a new one
    """
    if reset or not hasattr(conn, "connection"):
        user = user if user is not None else config["database.user"]
        database = database if database is not None else config["database.db_name"]
        if user is None or database is None:
            raise errors.SqlBlobError("Set config['database.user'] and config['database.db_name'] to connect.")
        conn.connection = Connection(
            host if host is not None else config["database.host"],
            user,
            password if password is not None else config["database.password"],
            database,
            use_tls=use_tls if use_tls is not None else config["database.use_tls"],
        )
    return conn.connection


class Connection:
    """
    A connection to the MySQL server holding the text table.

    :param host: server host name, optionally as ``host:port``
    :param user: user name
    :param password: password
    :param database: database of the text table, also the domain id of its row store
    :param port: server port when host carries none; defaults to ``config["database.port"]``
    :param use_tls: True requires TLS, False disables it and None prefers it;
        a dict passes explicit SSL options to pymysql
    """

    def __init__(
        self,
        host: str,
        user: str,
        password: str | None,
        database: str,
        port: int | None = None,
        use_tls: bool | dict[str, Any] | None = None,
    ) -> None:
        host, _, host_port = host.partition(":")
        if host_port:
            port = int(host_port)
        elif port is None:
            port = config["database.port"]
        self.conn_info = dict(host=host, port=port, user=user, password=password or "", database=database)
        self.use_tls = use_tls
        self._conn = None
        self.connect()
        logger.info(f"sqlblob {__version__} connected to {user}@{host}:{port}")

    def __repr__(self) -> str:
        state = "connected" if self.is_connected else "disconnected"
        return "sqlblob connection ({state}) {user}@{host}:{port}/{database}".format(state=state, **self.conn_info)

    @property
    def database(self) -> str:
        return self.conn_info["database"]

    def _connect_args(self, use_tls: bool | dict[str, Any] | None) -> dict[str, Any]:
        args = dict(self.conn_info, charset="utf8mb4", autocommit=True)
        if use_tls is not False:
            args["ssl"] = use_tls if isinstance(use_tls, dict) else {"ssl": {}}
        return args

    def connect(self) -> None:
        """
        Connect to the server. When TLS is only preferred and the server refuses
        it, connect again without TLS.
        """
        try:
            self._conn = client.connect(**self._connect_args(self.use_tls))
        except client.err.InternalError:
            if self.use_tls is not None:
                raise
            self._conn = client.connect(**self._connect_args(False))

    def close(self) -> None:
        self._conn.close()

    def ping(self) -> None:
        """Check the connection; raises a pymysql error when it is down."""
        self._conn.ping(reconnect=False)

    @property
    def is_connected(self) -> bool:
        try:
            self.ping()
        except client.err.Error:
            return False
        return True

    def _execute(self, query: str, args: tuple) -> Any:
        cursor = self._conn.cursor()
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            try:
                cursor.execute(query, args)
            except client.err.Error as e:
                error = translate_query_error(e, query)
                if error is e:
                    raise
                raise error from e
        return cursor

    def query(self, query: str, args: tuple = (), *, reconnect: bool | None = None) -> Any:
        """
        Execute a query with ``%s`` placeholders.

        A lost connection is re-established and the query retried once, unless
        reconnect (default ``config["database.reconnect"]``) is off.

        :return: the pymysql cursor
        :raises LostConnectionError: if the connection is lost and cannot be restored
        """
        if reconnect is None:
            reconnect = config["database.reconnect"]
        logger.debug("Executing SQL: " + query[:QUERY_LOG_MAX_LENGTH])
        try:
            return self._execute(query, args)
        except errors.LostConnectionError:
            if not reconnect:
                raise
            logger.warning("Reconnecting to MySQL server.")
            self.connect()
            return self._execute(query, args)
