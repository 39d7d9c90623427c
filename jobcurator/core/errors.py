"""Exception taxonomy for the curation pipeline.

Per-record and per-site problems are absorbed into session statistics.
Only the ``SessionHalted`` family ends a session unsuccessfully.
"""


class JobCuratorError(Exception):
    """Base class for all pipeline errors."""


class FetchError(JobCuratorError):
    """A site fetch failed after all retry attempts."""

    def __init__(self, site: str, url: str, cause: BaseException | None = None) -> None:
        self.site = site
        self.url = url
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Fetch failed for {site} ({url}){detail}")


class QuotaExceeded(JobCuratorError):
    """A site has no remaining quota in the current session."""

    def __init__(self, site: str) -> None:
        self.site = site
        super().__init__(f"Quota exhausted for site '{site}'")


class SessionHalted(JobCuratorError):
    """Session-level condition that stops all further scraping."""

    code = "halted"

    def __init__(self, reason: str, recommendations: list[str] | None = None) -> None:
        self.reason = reason
        self.recommendations = list(recommendations or [])
        super().__init__(reason)


class KillSwitchActive(SessionHalted):
    code = "kill_switch"


class QualityGateFailure(SessionHalted):
    code = "quality_gate"


class ErrorBudgetExhausted(SessionHalted):
    code = "error_budget"


class SessionTimeout(SessionHalted):
    code = "timeout"


class SessionStateError(JobCuratorError):
    """Illegal transition on a ScrapeSession (e.g. finishing it twice)."""
