"""LSP multiplexer.

Presents a single Language Server Protocol endpoint on stdin/stdout while
forwarding every client message to a configured set of language servers and
relaying their output back to the client.
"""

__version__ = "0.1.0"
