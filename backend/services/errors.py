"""
Domain errors for the market intelligence services.

Each error carries the HTTP status the error envelope should use, so route
handlers stay thin and never translate exceptions by hand.

Taxonomy:
- Precondition / not found (user-correctable, never retried): 400/404/422
- Generation or research failure after the bounded retry: 502
- Reasoning engine not configured: 503
Store I/O errors are not wrapped; they propagate as-is.
"""


class MarketIntelError(Exception):
    """Base class for user-facing market intelligence errors."""

    status_code = 500
    code = 'MARKET_INTEL_ERROR'

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details


class ProjectNotFoundError(MarketIntelError):
    status_code = 404
    code = 'PROJECT_NOT_FOUND'


class ProjectLocationMissingError(MarketIntelError):
    status_code = 422
    code = 'PROJECT_LOCATION_MISSING'


class NoComparableDataError(MarketIntelError):
    status_code = 422
    code = 'NO_COMPARABLE_DATA'


class InvalidAnalysisTypeError(MarketIntelError):
    status_code = 400
    code = 'INVALID_ANALYSIS_TYPE'


class InvalidSnapshotTriggerError(MarketIntelError):
    status_code = 400
    code = 'INVALID_SNAPSHOT_TRIGGER'


class CompetitorNotFoundError(MarketIntelError):
    status_code = 404
    code = 'COMPETITOR_NOT_FOUND'


class DuplicateCompetitorError(MarketIntelError):
    status_code = 409
    code = 'DUPLICATE_COMPETITOR'


class AnalysisGenerationError(MarketIntelError):
    status_code = 502
    code = 'ANALYSIS_GENERATION_FAILED'


class ReasoningEngineUnavailable(MarketIntelError):
    status_code = 503
    code = 'REASONING_ENGINE_UNAVAILABLE'


class CsvImportError(MarketIntelError):
    status_code = 400
    code = 'INVALID_CSV'


class ResearchFailedError(MarketIntelError):
    status_code = 502
    code = 'RESEARCH_FAILED'
