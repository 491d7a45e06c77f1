"""MCP Dashboard - install, configure and manage local MCP servers.

The desktop UI talks to this package over native messaging; everything
that touches the filesystem or runs a subprocess lives here.
"""

__version__ = "0.1.0"
