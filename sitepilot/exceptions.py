"""Exception hierarchy for SitePilot."""


class SitePilotError(Exception):
    """Base exception for all SitePilot errors."""


class CrawlerError(SitePilotError):
    """Raised when the crawler cannot run at all."""


class BrowserError(SitePilotError):
    """Raised when the browser engine is misused or unavailable."""


class RunnerError(SitePilotError):
    """Raised when a test run cannot be executed."""


class GeneratorError(SitePilotError):
    """Raised when AI test generation output is unusable."""


class LLMProviderError(SitePilotError):
    """Raised when an LLM provider call fails."""


class StorageError(SitePilotError):
    """Raised when storage operations fail."""


class EntityNotFoundError(StorageError):
    """Raised when a referenced entity does not exist in the store."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class JobError(SitePilotError):
    """Raised when a job cannot be queued or processed."""


class InvalidJobTransitionError(JobError):
    """Raised when a job status change would move backwards or skip RUNNING."""


class ConfigError(SitePilotError):
    """Raised when configuration is invalid."""
