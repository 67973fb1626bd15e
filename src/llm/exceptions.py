"""Error taxonomy for routing, execution and fallback."""

from typing import List, Optional

from ..models.llm_models import AttemptRecord


class OrchestratorError(Exception):
    """Base class for orchestrator errors."""

    pass


class NotFoundError(OrchestratorError):
    """Raised when a model (or other catalogue entry) is unknown."""

    pass


class NoCandidatesError(OrchestratorError):
    """Raised when no model can serve a request, not even the default."""

    pass


class ProviderError(OrchestratorError):
    """Base class for failures reported by a provider adapter."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientProviderError(ProviderError):
    """Retryable failure: rate limits, 5xx, dropped connections."""

    pass


class RateLimitError(TransientProviderError):
    """Raised when rate limited by provider."""

    pass


class PermanentProviderError(ProviderError):
    """Non-retryable failure: validation errors, other 4xx."""

    pass


class AllModelsFailedError(OrchestratorError):
    """Raised when the primary model and every fallback failed."""

    def __init__(self, message: str, attempts: List[AttemptRecord]):
        super().__init__(message)
        self.attempts = attempts

    @property
    def attempted_models(self) -> List[str]:
        return [a.model_id for a in self.attempts]


class RequestTimeoutError(OrchestratorError, TimeoutError):
    """Raised when the caller's deadline passes before a model succeeded."""

    def __init__(self, message: str, attempts: Optional[List[AttemptRecord]] = None):
        super().__init__(message)
        self.attempts = attempts or []


class InvalidTransitionError(OrchestratorError):
    """Raised on an illegal execution state transition."""

    pass


class TemplateNotFoundError(NotFoundError):
    """Raised when a prompt template id is unknown."""

    pass


class TemplateRenderError(OrchestratorError):
    """Raised when template variables are missing."""

    pass
