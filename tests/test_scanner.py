"""Tests for fenced trigger detection."""

from __future__ import annotations

from quillstream.triggers.scanner import (
    RegionKey,
    Trigger,
    TriggerKind,
    find_trigger,
    scan,
    split_update_topic,
    trigger_at,
)


def _doc(*lines: str) -> str:
    return "\n".join(lines)


def test_scan_detects_all_three_kinds_in_order() -> None:
    text = _doc(
        "# Trip",
        "```ai-template",
        "Yellowstone itinerary",
        "```",
        "",
        "```ai-write",
        "Where to see bison",
        "```",
        "```ai-update",
        "Make it friendlier",
        "",
        "Bison are large.",
        "```",
    )

    triggers = scan(text)

    assert [trigger.kind for trigger in triggers] == [
        TriggerKind.TEMPLATE,
        TriggerKind.WRITE,
        TriggerKind.UPDATE,
    ]
    assert triggers[0] == Trigger(TriggerKind.TEMPLATE, "Yellowstone itinerary", 1, 3)
    assert triggers[1].key == RegionKey(5, 7)
    assert triggers[2].topic == "Make it friendlier\n\nBison are large."


def test_scan_is_deterministic() -> None:
    text = _doc("```ai-write", "topic", "```", "```ai-write", "other", "```")

    assert scan(text) == scan(text)


def test_nested_opening_marker_is_content() -> None:
    text = _doc("```ai-write", "```ai-write", "topic", "```", "```")

    triggers = scan(text)

    assert len(triggers) == 1
    assert triggers[0].start_line == 0
    assert triggers[0].end_line == 3
    assert triggers[0].topic == "```ai-write\ntopic"


def test_unclosed_block_yields_nothing() -> None:
    assert scan(_doc("```ai-write", "hello")) == []


def test_markers_match_trimmed_lines_exactly() -> None:
    text = _doc(
        "   ```ai-write   ",
        "topic",
        "  ```  ",
        "```ai-writer",
        "not a trigger",
        "```",
        "```python",
        "print()",
        "```",
    )

    triggers = scan(text)

    assert [trigger.key for trigger in triggers] == [(0, 2)]


def test_plain_closing_fence_outside_block_is_ignored() -> None:
    text = _doc("```", "```ai-write", "topic", "```")

    assert [trigger.key for trigger in scan(text)] == [(1, 3)]


def test_topic_is_outer_trimmed_but_keeps_inner_lines() -> None:
    text = _doc("```ai-write", "", "  line one", "line two  ", "", "```")

    assert scan(text)[0].topic == "line one\nline two"


def test_empty_block_has_empty_topic() -> None:
    triggers = scan(_doc("```ai-template", "```"))

    assert triggers == [Trigger(TriggerKind.TEMPLATE, "", 0, 1)]


def test_carriage_returns_do_not_hide_markers() -> None:
    text = "```ai-write\r\ntopic\r\n```\r\n"

    triggers = scan(text)

    assert len(triggers) == 1
    assert triggers[0].topic == "topic"


def test_split_update_topic_on_first_blank_line() -> None:
    parts = split_update_topic("Shorter please\n\nFirst paragraph.\n\nSecond paragraph.")

    assert parts.instruction == "Shorter please"
    assert parts.prior_content == "First paragraph.\n\nSecond paragraph."


def test_split_update_topic_without_blank_line() -> None:
    parts = split_update_topic("Only an instruction\nspanning two lines")

    assert parts.instruction == "Only an instruction\nspanning two lines"
    assert parts.prior_content == ""


def test_split_update_topic_treats_whitespace_line_as_blank() -> None:
    parts = split_update_topic("Fix tone\n   \nBody")

    assert parts.instruction == "Fix tone"
    assert parts.prior_content == "Body"


def test_trigger_at_resolves_any_line_of_the_block() -> None:
    text = _doc("intro", "```ai-write", "topic", "```", "outro")

    assert trigger_at(text, 0) is None
    assert trigger_at(text, 1).key == (1, 3)
    assert trigger_at(text, 2).key == (1, 3)
    assert trigger_at(text, 3).key == (1, 3)
    assert trigger_at(text, 4) is None


def test_find_trigger_returns_none_when_range_went_stale() -> None:
    original = _doc("```ai-write", "topic", "```")
    edited = "new first line\n" + original

    assert find_trigger(original, (0, 2)) is not None
    assert find_trigger(edited, (0, 2)) is None
    assert find_trigger(edited, RegionKey(1, 3)).topic == "topic"
