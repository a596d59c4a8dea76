# backend/advisory_radar/core/errors.py
from typing import Optional


class AdvisoryRadarError(Exception):
    """Base class for all pipeline errors."""


class SourceFetchError(AdvisoryRadarError):
    def __init__(self, source_id: str, message: str) -> None:
        super().__init__(f"{source_id}: {message}")
        self.source_id = source_id


class ArchiveError(AdvisoryRadarError):
    """Raw archive or snapshot store is unreachable."""


class AlertNotFoundError(AdvisoryRadarError):
    def __init__(self, alert_id: str, source_id: Optional[str] = None) -> None:
        where = f" in {source_id}" if source_id else ""
        super().__init__(f"Alert {alert_id} not found{where}")
        self.alert_id = alert_id
        self.source_id = source_id


class AIAnalysisError(AdvisoryRadarError):
    """
    Classified AI provider failure.

    kind is one of: rate_limited, invalid_json, content_filtered, other.
    """

    RATE_LIMITED = "rate_limited"
    INVALID_JSON = "invalid_json"
    CONTENT_FILTERED = "content_filtered"
    OTHER = "other"

    def __init__(
        self,
        kind: str,
        message: str,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.retry_after = retry_after
