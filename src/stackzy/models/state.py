"""Pydantic model for the observable pipeline state."""

from pydantic import BaseModel, ConfigDict

from stackzy.models.report import AnalysisReport


class PipelineState(BaseModel):
    """Snapshot of a pipeline run as seen by a UI."""

    model_config = ConfigDict(frozen=True)

    loading_message: str | None = None
    """What the pipeline is doing right now; None when idle."""

    fatal_error: str | None = None
    """Set when the run aborted. Never set together with ``report``."""

    report: AnalysisReport | None = None

    warnings: tuple[str, ...] = ()
    """Non-fatal problems, e.g. a failed cache write."""
