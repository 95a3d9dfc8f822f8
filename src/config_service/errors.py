"""Error taxonomy for the configuration service.

Each error carries the HTTP status it maps to and a public message that is
safe to return to callers. Internal details go to the log only.
"""

from typing import Optional


class ConfigServiceError(Exception):
    """Base exception for configuration service errors."""
    status_code = 500
    public_message = "Configuration service error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class InvalidInput(ConfigServiceError):
    """Request body is missing or malformed."""
    status_code = 400
    public_message = "Invalid serverDefinitions configuration"


class NotFound(ConfigServiceError):
    """Removal target is not defined."""
    status_code = 404
    public_message = "Server not found"

    def __init__(self, server_name: str) -> None:
        super().__init__(f'Server "{server_name}" not found')
        self.server_name = server_name


class StorageUnavailable(ConfigServiceError):
    """Configuration document cannot be read, parsed or written."""
    public_message = "Failed to access server configuration"


class ManifestLoadFailure(ConfigServiceError):
    """Plugin manifest cannot be read or parsed."""
    public_message = "Failed to load tool manifest"


class PartialInitializationFailure(ConfigServiceError):
    """
    A server failed to connect during reconciliation.

    Collected per server and logged; never raised out of the pipeline.
    """

    def __init__(self, server_name: str, reason: str) -> None:
        super().__init__(f"Server '{server_name}' failed to initialize: {reason}")
        self.server_name = server_name
        self.reason = reason


class UnsupportedTransport(ConfigServiceError):
    """Server definition does not describe a transport the connector speaks."""
