"""
Exceptions raised by the mail delivery domain.
"""

from typing import Any, Mapping, Optional


class ConfigurationError(Exception):
    """
    Raised when the mailer cannot resolve usable Mailgun settings.

    Attributes:
        config: The (possibly merged) configuration that was rejected
    """

    def __init__(self, message: str, config: Optional[Mapping[str, Any]] = None):
        super().__init__(message)
        self.config = config
