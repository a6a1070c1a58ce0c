"""
Novah: Exception taxonomy
=========================
Upstream errors (provider failure, malformed output) are degraded to
fallbacks at the component that made the call. Only the node-lookup and
file-extraction errors are meant to reach the HTTP layer.
"""


class NovahError(Exception):
    """Base class for every error raised by the service."""


class UpstreamFailure(NovahError, RuntimeError):
    """All AI providers failed, errored, or timed out."""


class MalformedUpstreamOutput(NovahError, ValueError):
    """AI provider returned text that does not parse into the requested shape."""


class NodeNotFoundError(NovahError, KeyError):
    """Mind-map node id is absent from the graph."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(node_id)

    def __str__(self) -> str:
        return f"Mind map node '{self.node_id}' not found"


class UnsupportedFileTypeError(NovahError, ValueError):
    """No extractor is registered for the file extension."""

    def __init__(self, extension: str):
        self.extension = extension
        super().__init__(f"Unsupported file type: '{extension or 'none'}'")


class FileExtractionError(NovahError, ValueError):
    """A supported file could not be turned into text."""
