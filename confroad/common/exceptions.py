"""
Custom Exception Classes for confroad

Hierarchical exception structure for the sync engine.
Startup errors are fatal; steady-state errors are logged and dropped.
"""


class RoadError(Exception):
    """Base exception for all confroad errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class RemoteUnavailableError(RoadError):
    """Network or service failure talking to the remote config source"""

    def __init__(self, message: str, operation: str | None = None):
        self.operation = operation
        super().__init__(f"Remote Unavailable: {message}", recoverable=True)


class DocumentNotFoundError(RoadError):
    """Remote source does not know the requested document"""

    def __init__(self, document_id: str, group: str | None = None):
        self.document_id = document_id
        self.group = group
        super().__init__(
            f"Document not found: {document_id} (group: {group})",
            recoverable=False,
        )


class SubscriptionFailedError(RoadError):
    """Change subscription was rejected"""

    def __init__(self, message: str, document_id: str | None = None):
        self.document_id = document_id
        super().__init__(f"Subscription Failed: {message}", recoverable=True)


class CacheWriteError(RoadError):
    """Cache directory or file write failure"""

    def __init__(self, message: str, document_id: str | None = None, path: str | None = None):
        self.document_id = document_id
        self.path = path
        super().__init__(f"Cache Write Error: {message}", recoverable=True)


class BootstrapParseError(RoadError):
    """Malformed startup parameters"""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(f"Bootstrap Error: {message}", recoverable=False)


class ContentParseError(RoadError):
    """Document content could not be parsed for key lookup"""

    def __init__(self, message: str, document_id: str | None = None):
        self.document_id = document_id
        super().__init__(f"Content Parse Error: {message}", recoverable=True)


class StartupError(RoadError):
    """Fatal error during discovery or initial sync - engine is never returned"""

    def __init__(self, message: str, phase: str, document_id: str | None = None):
        self.phase = phase
        self.document_id = document_id
        super().__init__(f"Startup [{phase}]: {message}", recoverable=False)
