"""Error taxonomy shared by the acquisition pipeline."""


class GrabarrError(Exception):
    """Base class for errors raised by the pipeline."""


class ConfigurationError(GrabarrError):
    """Missing or inaccessible directory, missing collaborator. Not retried."""


class RecordNotFoundError(GrabarrError):
    """An owner-scoped record does not exist."""


class TransientExternalError(GrabarrError):
    """External call failed; the entity is retried on the next tick."""


class SearchError(TransientExternalError):
    pass


class DownloadSubmissionError(TransientExternalError):
    pass


class LibraryScanError(TransientExternalError):
    """The library root could not be read."""


class CollisionError(GrabarrError):
    """Destination already exists. Nothing was moved."""

    def __init__(self, destination: str):
        super().__init__(f"Destination already exists: {destination}")
        self.destination = destination


class RenameRejectedError(GrabarrError):
    """A rename proposal does not match the owner's records. Nothing was moved."""
