"""Custom exceptions for the Digital Studio scaffold generator."""


class DigitalStudioError(Exception):
    """Base exception for Digital Studio errors."""

    pass


class ConfigurationError(DigitalStudioError):
    """Raised when no usable credential or model is configured at startup."""

    pass


class LLMProviderError(DigitalStudioError):
    """Raised when an LLM provider cannot be created for a candidate."""

    pass


class NoAttachmentsOrPrompt(DigitalStudioError):
    """Raised when a run receives neither screen images nor a text description."""

    def __init__(self, message: str = "Provide at least one screen image or a text description."):
        super().__init__(message)


class AllEndpointsExhausted(DigitalStudioError):
    """Raised when every (credential, model) candidate failed for one invocation."""

    def __init__(self, attempts: int, last_error: BaseException | None = None):
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"All {attempts} generation endpoints failed{detail}")
        self.attempts = attempts
        self.last_error = last_error


class MalformedOutput(DigitalStudioError):
    """Raised when a structured response never parsed within the repair budget."""

    def __init__(self, stage: str, raw_response: str, attempts: int, error: str | None = None):
        detail = f" ({error})" if error else ""
        super().__init__(f"Stage '{stage}' returned malformed output after {attempts} attempts{detail}")
        self.stage = stage
        self.raw_response = raw_response
        self.attempts = attempts
        self.error = error


class GenerationTimeout(DigitalStudioError):
    """Raised when a pipeline run exceeds the per-request timeout."""

    def __init__(self, stage: str | None, timeout: float):
        super().__init__(f"Generation timed out after {timeout:g}s (stage: {stage or 'unknown'})")
        self.stage = stage
        self.timeout = timeout


class UpstreamDesignFetchError(DigitalStudioError):
    """Raised when a design source (e.g. Figma) cannot provide frames."""

    def __init__(self, message: str, reason: str = "upstream_error", status_code: int | None = None):
        super().__init__(message)
        self.reason = reason
        self.status_code = status_code


class PipelineFailure(DigitalStudioError):
    """Generic failure surfaced to callers when a run aborts."""

    def __init__(self, stage: str | None, cause: BaseException):
        super().__init__(f"Scaffold generation failed during {stage or 'setup'}: {cause}")
        self.stage = stage
        self.cause = cause
