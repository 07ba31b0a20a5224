"""termhost -- Browser-hosted terminal sessions.

This package implements a web server that owns long-lived pseudo-terminal
processes and multiplexes browser clients onto them over WebSockets.
Output is buffered for late-joining clients and session metadata
survives server restarts.
"""

__version__ = "0.1.0"
