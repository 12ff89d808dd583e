"""Share daemon transport layer

JSON-RPC 2.0 over newline-delimited TCP, server and client side.
"""

from .server import RPCServer
from .client import RPCClient

__all__ = [
    "RPCServer",
    "RPCClient",
]
