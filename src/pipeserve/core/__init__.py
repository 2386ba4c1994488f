"""
=============================================================================
CORE
=============================================================================

Transport and shared runtime state, below the HTTP layer:

    socket_server.py   listening socket, accept loop, signal handling
    connection.py      one client socket, request framing, keep-alive
    thread_pool.py     bounded worker pool, one connection per task
    rate_limiter.py    sliding-window request log per client identifier

    accept ──► Connection ──► ThreadPool.submit ──► HTTPServer._process_connection

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool
from .rate_limiter import SlidingWindowRateLimiter

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "ThreadPool",
    "SlidingWindowRateLimiter",
]
