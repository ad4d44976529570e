"""
Socket and thread level building blocks: the listener, the buffered
connection wrapper, the per-connection handler and the worker pool.
"""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer
from .thread_pool import ThreadPool
from .handler import ConnectionHandler

__all__ = [
    "Connection",
    "ConnectionState",
    "SocketServer",
    "ThreadPool",
    "ConnectionHandler",
]
