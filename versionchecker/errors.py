from __future__ import annotations

from typing import Optional


class VersionCheckerError(RuntimeError):
    pass


class SessionUnavailable(VersionCheckerError):
    """Raised when a remote call is attempted before the session is authenticated
    (or after it has failed for good)."""


class TransportFailure(VersionCheckerError):
    pass


class AuthFailure(VersionCheckerError):
    def __init__(self, result: object, extended_result: object = None):
        self.result = result
        self.extended_result = extended_result
        super().__init__(f"Unable to logon: {result} / {extended_result}")


class IdentifierUnresolvable(VersionCheckerError):
    def __init__(self, entry_name: str, reason: str):
        self.entry_name = entry_name
        self.reason = reason
        super().__init__(reason)


class MetadataShapeError(VersionCheckerError):
    """A node the update facts depend on is missing from an app's metadata tree."""

    kind = "MetadataShapeError"

    def __init__(self, remote_id: int, detail: Optional[str] = None):
        self.remote_id = remote_id
        self.detail = detail
        msg = f"{self.kind} for app {remote_id}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class DepotsNotFound(MetadataShapeError):
    kind = "Depots not found"


class BranchesNotFound(MetadataShapeError):
    kind = "Branches not found"


class NoPublicBranch(MetadataShapeError):
    kind = "No public branch found"


class NoBuildId(MetadataShapeError):
    kind = "No build ID found"


class RemoteRequestFailure(VersionCheckerError):
    def __init__(self, url: str, status: object, reason: str = ""):
        self.url = url
        self.status = status
        super().__init__(f"GET {url} failed: {status} {reason}".rstrip())


class PersistenceFailure(VersionCheckerError):
    pass
