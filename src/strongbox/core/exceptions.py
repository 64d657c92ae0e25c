"""
Exceptions for Strongbox
Expected outcomes (wrong password, bad ciphertext, checksum mismatch) derive
from OperationFailure and are turned into typed results by core.results.
Infrastructure failures (storage, configuration) are raised to the caller.
"""


class StrongboxError(Exception):
    # general container for errors
    pass


class OperationFailure(StrongboxError):
    # expected domain outcome; never retried, surfaced as a typed result
    outcome = "failure"


class AuthenticationError(OperationFailure):
    # wrong master or collection password; never says whether the collection exists
    outcome = "auth_failure"


class DecryptionError(OperationFailure):
    # envelope malformed, key mismatch or invalid padding
    outcome = "decryption_failure"


class DeserializationError(DecryptionError):
    # decrypted bytes do not have the expected structured shape
    pass


class IntegrityCheckFailedError(OperationFailure):
    # raised on a hash mismatch (file payload or backup artifact)
    outcome = "integrity_failure"


class RecordNotFoundError(OperationFailure):
    # raised when a record or backup DNE
    outcome = "not_found"


class BackupError(OperationFailure):
    # raised when a backup or restore cannot proceed
    outcome = "backup_failure"


class StorageError(StrongboxError):
    # raised if the record store or blob store fails in some way
    pass


class InvalidPathError(StorageError):
    # raised when a blob name escapes the blob root
    pass


class ConfigurationError(StrongboxError):
    # missing crypto provider or unusable setup; fatal, not retried
    pass


class SessionLockedError(StrongboxError):
    # raised when the master key is requested from a locked session
    pass


class NotInitializedError(StrongboxError):
    # raised when the vault has no master credential yet
    pass


class AlreadyInitializedError(StrongboxError):
    # raised when initializing a vault that already has a master credential
    pass


class CollectionExistsError(StrongboxError):
    # raised when creating a collection whose name is taken
    pass
