"""Error taxonomy for the deployment server.

Every error raised by the core derives from ``HotswapError`` so the control
plane can translate failures into a single structured response.  The
subclasses map onto HTTP status codes at the boundary:

- ``ValidationError``               -> 400
- ``ExtractionError``               -> 500
- ``ArtifactStorageError``          -> 500
- ``InstanceStartError`` (family)   -> 500, slot left empty
- ``InstanceStopError``             -> logged during deploy, never surfaced
- ``LedgerCorruptError``            -> swallowed, treated as "no prior state"
"""

from __future__ import annotations


class HotswapError(RuntimeError):
    """Base class for all deployment server errors."""


class ValidationError(HotswapError, ValueError):
    """Raised when an upload carries missing or malformed deploy metadata."""


class ExtractionError(HotswapError):
    """Raised when an uploaded byte stream is not a usable gzip tar archive."""


class ArtifactStorageError(HotswapError, OSError):
    """Raised when the artifact store cannot write to disk."""


class InstanceStartError(HotswapError):
    """Base class for failures while starting an application instance."""


class EntrypointNotFoundError(InstanceStartError):
    """Raised when the entrypoint file is absent from the artifact directory."""


class AppLoadError(InstanceStartError):
    """Raised when the entrypoint does not expose a request handler."""


class StartTimeoutError(AppLoadError):
    """Raised when loading the application exceeds the start timeout."""


class BindError(InstanceStartError):
    """Raised when the instance listener cannot bind its port."""


class InstanceStopError(HotswapError):
    """Raised when an instance's listener could not be released."""


class LedgerCorruptError(HotswapError):
    """Raised when the persisted state record cannot be read or parsed."""
