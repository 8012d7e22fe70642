class RepositoryError(Exception):
    """Base exception for document repository failures."""


class RepositoryConnectionError(RepositoryError):
    """Raised when the repository session cannot be established."""


class DocumentNotFoundError(RepositoryError):
    """Raised when a document id does not exist in the cabinet."""


class RepositoryWriteError(RepositoryError):
    """Raised when index fields cannot be written back."""
