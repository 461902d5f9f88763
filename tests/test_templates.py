"""Tests for the notification template renderer."""

from datetime import datetime, timezone

import pytest

from supportwatch.notifications.domain import TemplateRenderer, format_value


@pytest.fixture
def renderer():
    return TemplateRenderer()


BINDINGS = {
    "ticket": {"id": "T-42", "title": "Printer on fire", "assigned_to": None},
    "ticketId": "T-42",
    "ticketUrl": "https://support.example.com/tickets/T-42",
    "level": 2,
}


def test_placeholders_resolve_dotted_paths(renderer):
    text = renderer.render("[{{ticketId}}] {{ ticket.title }} - {{ticketUrl}}", BINDINGS)
    assert text == "[T-42] Printer on fire - https://support.example.com/tickets/T-42"


def test_missing_placeholder_renders_empty_and_is_reported(renderer):
    result = renderer.render_with_report("Owner: {{ticket.owner}}.", BINDINGS)
    assert result.text == "Owner: ."
    assert result.missing == ["ticket.owner"]


def test_none_value_counts_as_missing(renderer):
    result = renderer.render_with_report("{{ticket.assigned_to}}", BINDINGS)
    assert result.text == ""
    assert "ticket.assigned_to" in result.missing


def test_if_block_kept_only_for_truthy_value(renderer):
    template = "Escalated{{#if level}} to level {{level}}{{/if}}{{#if ticket.assigned_to}} ({{ticket.assigned_to}}){{/if}}"
    assert renderer.render(template, BINDINGS) == "Escalated to level 2"


def test_nested_if_blocks(renderer):
    template = "{{#if ticket}}A{{#if level}}B{{/if}}{{#if missing}}C{{/if}}{{/if}}"
    assert renderer.render(template, BINDINGS) == "AB"


@pytest.mark.parametrize("template", [
    "Hello {{#if level}}there",
    "Hello {{/if}} there",
    "{{unknown}} and {{ticket.nothing}}",
    "{{#if level}}{{#if ticket}}x{{/if}}",
])
def test_output_never_contains_template_markup(renderer, template):
    assert "{{" not in renderer.render(template, BINDINGS)
    assert "}}" not in renderer.render(template, BINDINGS)


def test_empty_template(renderer):
    assert renderer.render("", BINDINGS) == ""


def test_format_value():
    at = datetime(2024, 3, 4, 9, 30, tzinfo=timezone.utc)
    assert format_value(at) == "2024-03-04T09:30:00+00:00"
    assert format_value(True) == "true"
    assert format_value(["a", "b"]) == "a, b"
    assert format_value(3.5) == "3.5"


def test_bound_values_are_rendered_verbatim(renderer):
    bindings = {"ticket": {"title": "Broken {{/if}} and {{#if x}} markers"}}

    result = renderer.render_with_report("Title: {{ticket.title}}", bindings)

    assert result.text == "Title: Broken {{/if}} and {{#if x}} markers"
    assert result.missing == []
