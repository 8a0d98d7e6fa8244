"""Tests for stderr classification of MongoDB tools."""

from __future__ import annotations

import pytest

from backup.classifier import OutputClassifier, ToolOperation
from backup.errors import ToolReportedError


DUMP_PROGRESS = """\
2025-03-04T05:06:07.089+0000\twriting shop.users to /tmp/out/shop/users.bson
2025-03-04T05:06:07.120+0000\tdone dumping shop.users (12 documents)
"""

RESTORE_PROGRESS = """\
2025-03-04T05:06:07.089+0000\tpreparing collections to restore from
2025-03-04T05:06:07.090+0000\treading metadata for shop.users from /tmp/out/shop/users.metadata.json
2025-03-04T05:06:07.100+0000\trestoring shop.users from /tmp/out/shop/users.bson
2025-03-04T05:06:07.110+0000\tno indexes to restore for collection shop.users

2025-03-04T05:06:07.120+0000\t12 document(s) restored successfully. 0 document(s) failed to restore.
"""


@pytest.fixture
def classifier() -> OutputClassifier:
    return OutputClassifier()


def test_empty_stderr_is_ok(classifier: OutputClassifier) -> None:
    for operation in ToolOperation:
        assert classifier.classify(operation, "").ok
        assert classifier.classify(operation, None).ok


def test_progress_output_is_ok(classifier: OutputClassifier) -> None:
    assert classifier.classify(ToolOperation.dump, DUMP_PROGRESS).ok
    assert classifier.classify(ToolOperation.restore, RESTORE_PROGRESS).ok
    assert classifier.classify(ToolOperation.drop, "{ ok: 1, dropped: 'shop' }\n").ok


def test_markers_are_case_insensitive(classifier: OutputClassifier) -> None:
    assert classifier.classify(ToolOperation.dump, "DONE DUMPING shop.users").ok


def test_error_line_among_progress_is_reported(classifier: OutputClassifier) -> None:
    stderr = DUMP_PROGRESS + "Failed: error connecting to db server: no reachable servers\n"
    result = classifier.classify(ToolOperation.dump, stderr)
    assert not result.ok
    assert result.unexpected_lines == ("Failed: error connecting to db server: no reachable servers",)


def test_drop_does_not_accept_words_containing_ok(classifier: OutputClassifier) -> None:
    assert not classifier.classify(ToolOperation.drop, "MongoServerError: invalid token").ok


def test_check_raises_with_diagnostic_and_phase(classifier: OutputClassifier) -> None:
    with pytest.raises(ToolReportedError) as excinfo:
        classifier.check(ToolOperation.restore, "error: bad bson\n", phase="classify_output")
    err = excinfo.value
    assert err.phase == "classify_output"
    assert err.diagnostic == "error: bad bson\n"
    assert "bad bson" in str(err)


def test_custom_marker_table() -> None:
    classifier = OutputClassifier({ToolOperation.dump: ("all good",)})
    assert classifier.classify(ToolOperation.dump, "All Good").ok
    assert not classifier.classify(ToolOperation.dump, "writing shop.users").ok
