class PipelineError(Exception):
    """Base class for ingestion and sync failures."""


class ValidationError(PipelineError):
    """Bad operator input. Reported as HTTP 400."""


class RateLimitError(PipelineError):
    def __init__(self, retry_after: int):
        super().__init__(f"Rate limit exceeded, retry after {retry_after}s")
        self.retry_after = retry_after


class ScrapeError(PipelineError):
    """A source listing could not be fetched or parsed."""


class HttpError(PipelineError):
    """A single page fetch failed (network error, timeout, blocked URL)."""


class StoreUnavailableError(PipelineError):
    """The record store cannot be read or written. Aborts the current run."""


class DuplicateSlugError(PipelineError):
    def __init__(self, slug: str):
        super().__init__(f"Slug already in use: {slug}")
        self.slug = slug
