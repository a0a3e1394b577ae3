from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from shipment_ingest.models.processing_result import ProcessingResult
from shipment_ingest.services.summary import format_elapsed, render_summary_line


def _result(elapsed: float, **counts) -> ProcessingResult:
    start = datetime.now(UTC)
    values = dict(processed_documents=2, errored_documents=1, total_bundles=7, persisted_bundles=6, failed_bundles=1)
    values.update(counts)
    return ProcessingResult(
        start_time=start,
        end_time=start + timedelta(seconds=elapsed),
        elapsed_seconds=elapsed,
        **values,
    )


def test_render_summary_line_fields_in_order():
    line = render_summary_line(_result(1.23456))
    assert line == "SUMMARY documents=3/3 processed=2 errored=1 bundles=7 persisted=6 failed=1 elapsed_sec=1.235"


def test_render_summary_line_empty_run():
    line = render_summary_line(
        _result(0.0, processed_documents=0, errored_documents=0, total_bundles=0, persisted_bundles=0, failed_bundles=0)
    )
    assert line == "SUMMARY documents=0/0 processed=0 errored=0 bundles=0 persisted=0 failed=0 elapsed_sec=0"


@pytest.mark.parametrize(
    "seconds,expected",
    [
        (0, "0"),
        (3.0, "3"),
        (0.5, "0.5"),
        (12.3456, "12.346"),
        (0.00012, "0.00012"),
        (0.0000001, "0"),
    ],
)
def test_format_elapsed(seconds, expected):
    assert format_elapsed(seconds) == expected
