"""Enums and type aliases for SitePilot."""

from enum import StrEnum


class StepType(StrEnum):
    NAVIGATE = "navigate"
    CLICK = "click"
    TYPE = "type"
    WAIT = "wait"
    ASSERT = "assert"


class Priority(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class GenerationSource(StrEnum):
    AI = "ai"
    FALLBACK = "fallback"
    MANUAL = "manual"


class JobKind(StrEnum):
    CRAWL = "crawl"
    TEST_EXECUTION = "test-execution"
    SCHEDULED_DISPATCH = "scheduled-dispatch"


class JobStatus(StrEnum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class WebsiteStatus(StrEnum):
    PENDING = "PENDING"
    CRAWLING = "CRAWLING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


class RunStatus(StrEnum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class BugSeverity(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class LLMProvider(StrEnum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    OLLAMA = "ollama"
