"""
Unit tests for the structlog processors.
"""

from opsmetrics import __version__
from opsmetrics.models.enums import EntityKind, Granularity
from opsmetrics.utils.logging import add_app_context, add_severity, render_enum_values


def test_add_severity_uses_method_name():
    assert add_severity(None, "warning", {"event": "x"})["severity"] == "WARNING"


def test_add_app_context_keeps_explicit_values():
    event = add_app_context(None, "info", {"event": "x", "app": "worker"})
    assert event["app"] == "worker"
    assert event["version"] == __version__


def test_render_enum_values():
    event = render_enum_values(
        None,
        "info",
        {"event": "x", "kind": EntityKind.LINE_ITEMS, "granularity": Granularity.WEEK, "n": 3},
    )
    assert event == {"event": "x", "kind": "sale_items", "granularity": "week", "n": 3}
