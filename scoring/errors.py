"""
Exceptions raised by LLM analysis
"""


class AnalysisError(Exception):
    """Base class for scoring failures"""


class JSONRecoveryError(AnalysisError):
    """No JSON value could be recovered from an LLM response"""


class InvalidAnalysisResponse(AnalysisError):
    """Recovered JSON lacks required fields"""


class ChunkFailureCeilingExceeded(AnalysisError):
    """Too many chunks failed for the aggregate to be trusted"""

    def __init__(self, failed: int, total: int, max_failure_rate: float, errors=None):
        self.failed = failed
        self.total = total
        self.max_failure_rate = max_failure_rate
        self.errors = list(errors or [])
        super().__init__(
            f"{failed} of {total} chunks failed (ceiling {max_failure_rate:.0%})"
        )


class AllProvidersFailedError(AnalysisError):
    """Every configured LLM provider in the fallback chain raised"""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("All LLM providers failed: " + "; ".join(self.errors))
