"""
Exceptions for MindVault
Everything raised on purpose derives from VaultError so callers have one
general error catcher
"""


class VaultError(Exception):
    # general container for errors
    pass


class ConfigurationError(VaultError):
    # raised when the static vault descriptor is missing or incomplete (fatal)
    pass


class AuthenticationError(VaultError):
    # raised when the admin credential is invalid or was revoked
    pass


class PermissionDeniedError(AuthenticationError):
    # raised when the store refuses a write/delete for the current credential
    pass


class ConflictError(VaultError):
    # raised when a conditional write carries a stale version tag
    pass


class DecryptionFailure(VaultError):
    # raised on an authentication tag mismatch (wrong key or corrupted data)
    pass


class NotFoundError(VaultError):
    # raised when a blob, group or item does not exist
    pass


class TransportError(VaultError):
    # raised when the backing store cannot be reached or answers garbage
    pass


class GroupLockedError(VaultError):
    # raised when an operation needs a group that is not unlocked in this session
    pass


class InvalidItemError(VaultError):
    # raised when an item draft does not match its type
    pass


class InvalidTransitionError(VaultError):
    # raised on an illegal unlock state change
    pass
