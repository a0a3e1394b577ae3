from __future__ import annotations

from ..models.processing_result import ProcessingResult

"""SUMMARY line rendering.

Format:
SUMMARY documents={total}/{total} processed={n} errored={n} bundles={n}
persisted={n} failed={n} elapsed_sec={elapsed}
"""

__all__ = ["format_elapsed", "render_summary_line"]


def format_elapsed(seconds: float) -> str:
    """Integral values without a decimal point, tiny values without scientific notation."""
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return str(round(seconds, 3))


def render_summary_line(result: ProcessingResult) -> str:
    """Render the single SUMMARY line for a run.

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2024, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> result = ProcessingResult(
        ...     processed_documents=1, errored_documents=0, total_bundles=3,
        ...     persisted_bundles=3, failed_bundles=0, start_time=start,
        ...     end_time=end, elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(result)
        'SUMMARY documents=1/1 processed=1 errored=0 bundles=3 persisted=3 failed=0 elapsed_sec=2'
    """
    total = result.total_documents
    return (
        f"SUMMARY documents={total}/{total} "
        f"processed={result.processed_documents} "
        f"errored={result.errored_documents} "
        f"bundles={result.total_bundles} "
        f"persisted={result.persisted_bundles} "
        f"failed={result.failed_bundles} "
        f"elapsed_sec={format_elapsed(result.elapsed_seconds)}"
    )
