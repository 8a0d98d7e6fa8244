"""Tests for structured logging setup."""

from __future__ import annotations

import importlib
import logging


def _reload_logging_module():
    module = importlib.import_module("observability.logging")
    return importlib.reload(module)


def test_configure_logging_sets_level_and_is_idempotent():
    module = _reload_logging_module()
    module.configure_logging(debug=True)
    assert logging.getLogger().level == logging.DEBUG
    assert module._configured is True

    module.configure_logging(debug=False)
    assert logging.getLogger().level == logging.INFO
