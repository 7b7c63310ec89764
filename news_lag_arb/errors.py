"""Error taxonomy shared by the core and its collaborators.

Only ValidationError is meant to reach a caller. The other three are raised
by collaborator adapters and recovered by the core: transport failures fall
back to offline data or skip the item, malformed responses are replaced by a
conservative default, and configuration gaps switch a collaborator to mock
mode.
"""


class NewsEdgeError(Exception):
    """Base class for all news-lag errors."""


class TransportError(NewsEdgeError):
    """Network or API failure reaching an external collaborator."""


class MalformedResponseError(NewsEdgeError):
    """A collaborator answered, but the payload could not be parsed."""


class ValidationError(NewsEdgeError, ValueError):
    """Caller-supplied input is outside its contract."""


class ConfigurationError(NewsEdgeError):
    """A collaborator is missing credentials or settings."""
