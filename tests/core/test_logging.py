"""
Tests for the structlog processors and context helpers.
"""

import structlog

from site_analyzer.core.logging import (
    MAX_FIELD_CHARS,
    add_severity,
    bind_analysis_context,
    build_processors,
    truncate_long_values,
)


class TestProcessors:

    def test_severity_mapping(self):
        assert add_severity(None, "warning", {})["severity"] == "WARNING"
        assert add_severity(None, "msg", {})["severity"] == "INFO"

    def test_long_values_are_truncated(self):
        event = truncate_long_values(None, "info", {"event": "Page loaded", "html": "x" * (MAX_FIELD_CHARS + 10)})
        assert event["html"].endswith("... [10 more chars]")
        assert event["event"] == "Page loaded"

    def test_short_values_untouched(self):
        event = truncate_long_values(None, "info", {"event": "e", "url": "https://example.com", "pages": 3})
        assert event == {"event": "e", "url": "https://example.com", "pages": 3}

    def test_json_format_ends_with_json_renderer(self):
        processors = build_processors("json")
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        assert add_severity in processors
        assert truncate_long_values in processors

    def test_console_format_ends_with_console_renderer(self):
        processors = build_processors("console")
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
        assert structlog.processors.format_exc_info not in processors


class TestAnalysisContext:

    def test_binds_site_and_task(self):
        bind_analysis_context("https://example.com", "site-analysis", task_id="abc")
        try:
            context = structlog.contextvars.get_contextvars()
            assert context == {"site_url": "https://example.com", "category": "site-analysis", "task_id": "abc"}
        finally:
            structlog.contextvars.clear_contextvars()

    def test_rebinding_replaces_previous_site(self):
        bind_analysis_context("https://a.example", "site-analysis", task_id="1")
        bind_analysis_context("https://b.example", "site-analysis")
        try:
            context = structlog.contextvars.get_contextvars()
            assert context["site_url"] == "https://b.example"
            assert "task_id" not in context
        finally:
            structlog.contextvars.clear_contextvars()
