"""Exception taxonomy for the training pipeline.

Every error carries a caller-safe message; the API layer maps each class
to an HTTP status without inspecting the message.
"""


class TrainingPipelineError(Exception):
    """Base class for every fault the training pipeline surfaces to callers."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# === Configuration ===


class ConfigurationError(TrainingPipelineError):
    """A required collaborator is not configured."""


class ProviderUnavailable(ConfigurationError):
    """A provider client (embedding or model) has not been configured."""


# === Lookup ===


class NotFoundError(TrainingPipelineError):
    """A referenced record does not exist."""


class SessionNotFound(NotFoundError):
    pass


class TemplateNotFound(NotFoundError):
    pass


class DocumentNotFound(NotFoundError):
    pass


# === Session lifecycle ===


class SessionBusy(TrainingPipelineError):
    """Another run already owns the session."""


class InvalidTransition(TrainingPipelineError):
    """A status change that the session state machine does not allow."""


# === Upstream ===


class ProviderError(TrainingPipelineError):
    """The embedding provider failed or returned no usable embedding."""


class StoreUnavailable(TrainingPipelineError):
    """The vector store could not be reached."""


class QueryError(TrainingPipelineError):
    """The vector store rejected the query or returned malformed rows."""


class SynthesisError(TrainingPipelineError):
    """A language-model call failed, timed out, or is unconfigured."""


class MalformedProviderResponse(SynthesisError):
    """A language-model reply did not contain any usable text."""


# === Persistence ===


class PersistenceError(TrainingPipelineError):
    """A run, document, or citation write did not succeed."""


class CitationWriteError(PersistenceError):
    pass
