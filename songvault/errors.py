"""Error taxonomy shared by the auth gate, orchestration and routes."""


class SongVaultError(Exception):
    """Base error; ``status_code`` is the HTTP status the API responds with."""

    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class Unauthenticated(SongVaultError):
    status_code = 401


class Forbidden(SongVaultError):
    status_code = 403


class InvalidInput(SongVaultError):
    status_code = 400


class NotFound(SongVaultError):
    status_code = 404


class Conflict(SongVaultError):
    """Raised when a song changed between read and write (version mismatch)."""

    status_code = 409


class DependencyFailure(SongVaultError):
    """Wraps any failure or timeout of MongoDB, object storage or the identity provider."""

    status_code = 500
