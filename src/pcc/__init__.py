"""
=============================================================================
PCC - Printable Character Counting Server
=============================================================================

A client sends a file over TCP; the server answers with the number of
printable ASCII bytes (values 32..126) in it, and keeps a per-character
histogram across every connection which it prints when stopped with Ctrl+C.

=============================================================================
PROJECT STRUCTURE
=============================================================================

    pcc/
    ├── __init__.py          # This file
    ├── __main__.py          # pcc-server CLI (python -m pcc)
    ├── client.py            # pcc-client CLI and send_file()
    ├── config.py            # ServerConfig
    ├── counter.py           # Histogram, count_printable()
    ├── server.py            # PCCServer orchestrator
    └── core/
        ├── framing.py       # read_exact / write_exact, length prefix
        ├── connection.py    # One client connection
        ├── shutdown.py      # IDLE/BUSY state, SIGINT handling
        └── socket_server.py # Listening socket + accept loop

=============================================================================
QUICK START
=============================================================================

    from pcc import PCCServer, ServerConfig

    server = PCCServer(ServerConfig(port=5000))
    server.run()

    # elsewhere
    from pcc.client import send_file
    send_file("127.0.0.1", 5000, "notes.txt")   # → printable count

=============================================================================
"""

__version__ = "1.0.0"

from .server import PCCServer, create_server
from .config import ServerConfig
from .counter import Histogram, count_printable

__all__ = [
    "PCCServer",
    "create_server",
    "ServerConfig",
    "Histogram",
    "count_printable",
    "__version__",
]
