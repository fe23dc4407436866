class PatentExplorerError(Exception):
    """Base class for errors raised by the patent explorer service."""


class ConfigurationError(PatentExplorerError):
    """A required credential or setting is missing for the current mode."""


class UpstreamServiceError(PatentExplorerError):
    """A third-party API (search, sandbox, billing) returned an error."""

    def __init__(self, service: str, message: str, status_code: int = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code


class SandboxError(UpstreamServiceError):
    def __init__(self, message: str, status_code: int = None):
        super().__init__("Daytona", message, status_code)
