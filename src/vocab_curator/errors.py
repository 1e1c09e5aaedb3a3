"""Exception hierarchy for the record store, assets, workflow and provider."""
from typing import Optional


class VocabCuratorError(Exception):
    pass


class ConfigError(VocabCuratorError):
    pass


class PreassignedIdentifierError(VocabCuratorError, ValueError):
    """Raised when a record handed to ``add`` already has an identifier."""


class InvalidTransitionError(VocabCuratorError, ValueError):
    """Raised when a lifecycle action is not allowed from the current status."""


class IncompleteExplanationsError(VocabCuratorError, ValueError):
    pass


class NotFoundError(VocabCuratorError, LookupError):
    pass


class DataIntegrityError(VocabCuratorError):
    """A record references data that does not exist or is inconsistent."""


class MalformedStoreError(VocabCuratorError):
    pass


class StoreSaveError(VocabCuratorError):
    """Collects every failure that happened during one save.

    The data file itself may have been written even when this is raised,
    e.g. when only backup pruning failed.
    """

    def __init__(self, errors: list):
        self.errors = list(errors)
        details = "; ".join(f"{type(e).__name__}: {e}" for e in self.errors)
        super().__init__(f"{len(self.errors)} error(s) during save: {details}")


class ProviderError(VocabCuratorError):
    """A content-generation call failed.

    ``payload`` holds the provider's structured error body when one was returned.
    """

    def __init__(self, message: str, payload: Optional[dict] = None):
        super().__init__(message)
        self.payload = payload


class DeadlineExceeded(ProviderError):
    pass


class GenerationCancelled(ProviderError):
    pass
