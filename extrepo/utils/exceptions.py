from __future__ import annotations

from typing import Any, Optional


class ExtrepoError(Exception):
    """Base exception for all extrepo errors."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        """
        Initialize exception.

        Args:
            message: Error message
            **kwargs: Additional error information
        """
        self.message = message
        self.details = kwargs.pop("details", {})
        self.details.update(kwargs)
        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return f"{self.message}"


class ManagerError(ExtrepoError):
    """Base exception for manager-related errors."""

    def __init__(self, message: str, manager_name: Optional[str] = None, **kwargs: Any) -> None:
        """
        Initialize manager error.

        Args:
            message: Error message
            manager_name: Name of the affected manager
            **kwargs: Additional error information
        """
        if manager_name:
            kwargs["manager_name"] = manager_name
        super().__init__(message, **kwargs)
        self.manager_name = manager_name

    def __str__(self) -> str:
        """String representation."""
        if self.manager_name:
            return f"{self.message} (Manager: {self.manager_name})"
        return super().__str__()


class ManagerInitializationError(ManagerError):
    """Exception raised when a manager fails to initialize."""

    pass


class ManagerShutdownError(ManagerError):
    """Exception raised when a manager fails to shut down cleanly."""

    pass


class ConfigurationError(ExtrepoError):
    """Exception raised for configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs: Any) -> None:
        """Initialize a ConfigurationError.

        Args:
            message: A descriptive error message.
            config_key: The configuration key that caused the error.
            **kwargs: Additional error information.
        """
        if config_key:
            kwargs["config_key"] = config_key
        super().__init__(message, **kwargs)
        self.config_key = config_key


class RepositoryError(ExtrepoError):
    """Exception raised for errors in repository operations."""

    def __init__(self, message: str, repo_id: Optional[str] = None, **kwargs: Any) -> None:
        """Initialize a RepositoryError.

        Args:
            message: A descriptive error message.
            repo_id: Id of the repository that raised the error.
            **kwargs: Additional error information.
        """
        if repo_id:
            kwargs["repo_id"] = repo_id
        super().__init__(message, **kwargs)
        self.repo_id = repo_id


class DescriptorError(ExtrepoError, OSError):
    """Exception raised when a descriptor document cannot be opened or parsed.

    The original I/O or parse error is available as ``__cause__``.
    """

    def __init__(self, message: str, document: Optional[str] = None, **kwargs: Any) -> None:
        """Initialize a DescriptorError.

        Args:
            message: A descriptive error message.
            document: Locator of the unreadable document.
            **kwargs: Additional error information.
        """
        if document:
            kwargs["document"] = document
        super().__init__(message, **kwargs)
        self.document = document


class ResolutionError(RepositoryError):
    """Exception raised when an extension package cannot be resolved."""

    def __init__(
            self,
            message: str,
            coordinate: Optional[str] = None,
            repo_id: Optional[str] = None,
            **kwargs: Any
    ) -> None:
        """Initialize a ResolutionError.

        Args:
            message: A descriptive error message.
            coordinate: The ``group:artifact:packaging:version`` being resolved.
            repo_id: Id of the repository that raised the error.
            **kwargs: Additional error information.
        """
        if coordinate:
            kwargs["coordinate"] = coordinate
        super().__init__(message, repo_id=repo_id, **kwargs)
        self.coordinate = coordinate

    def __str__(self) -> str:
        """String representation."""
        if self.coordinate:
            return f"{self.message} ({self.coordinate})"
        return super().__str__()


class VerificationError(ResolutionError):
    """Exception raised when a resolved package fails verification."""

    pass
