"""Terminal session server for termhost.

Serves the session REST API and the terminal WebSocket that browser
clients attach to. The registry and metadata store are built once at
startup and shared by every route through ``app.state``.
"""
