"""Tests for the context-preserving markdown serializer (task_engine/serializer.py)."""

from __future__ import annotations

import pytest

from tasksync.task_engine.model import Task
from tasksync.task_engine.parser import parse
from tasksync.task_engine.serializer import serialize, split_metadata_block


def _roundtrip(doc: str) -> str:
    parsed = parse(doc)
    return serialize(parsed.tasks, parsed.group_order, parsed.group_titles, parsed.lines)


def _by_text(tasks: list[Task], text: str) -> Task:
    return next(t for t in tasks if t.text == text)


class TestRegenerate:
    def test_without_provenance(self) -> None:
        tasks = [
            Task(id="t1", text="a", order=0),
            Task(id="t2", text="b", done=True, order=1, group_id="work"),
        ]
        out = serialize(tasks, ["", "work"], {"": "Tasks", "work": "Work"})
        assert out == "- [ ] a\n\n## Work\n- [x] b\n"

    def test_empty_groups_are_skipped(self) -> None:
        tasks = [Task(id="t1", text="a", group_id="work")]
        out = serialize(tasks, ["", "work", "empty"], {"work": "Work", "empty": "Empty"})
        assert out == "## Work\n- [ ] a\n"

    def test_unknown_title_falls_back_to_id(self) -> None:
        tasks = [Task(id="t1", text="a", group_id="misc")]
        assert serialize(tasks, [""], {}) == "## misc\n- [ ] a\n"


class TestRoundTrip:
    @pytest.mark.parametrize(
        "doc",
        [
            "- [ ] Buy milk\n## Done\n- [x] Ship release\n",
            "- [ ] no trailing newline",
            "# Title\n\nSome prose.\n\n## Work\n- [ ] a\n  - [x] nested\n\n#### Deep\n> quote\n",
            "## Work\n- [ ] a\n\n%%\nkanban: true\n%%\n",
            "- [ ] dup\n- [ ] dup\n- [x] dup\n",
            "",
        ],
    )
    def test_unmodified_document_is_reproduced(self, doc: str) -> None:
        assert _roundtrip(doc) == doc

    def test_uppercase_marker_is_preserved(self) -> None:
        assert _roundtrip("- [X] shout\n") == "- [X] shout\n"

    def test_crlf_is_normalized_to_lf(self) -> None:
        assert _roundtrip("a\r\n- [ ] b\r\n") == "a\n- [ ] b\n"

    def test_roundtrip_is_a_fixed_point(self) -> None:
        doc = "Intro\n## A\n- [ ] one\n## B\n- [x] two\nfooter"
        once = _roundtrip(doc)
        assert _roundtrip(once) == once


class TestMerge:
    def test_buy_milk_scenario(self) -> None:
        parsed = parse("- [ ] Buy milk\n## Done\n- [x] Ship release\n")
        _by_text(parsed.tasks, "Buy milk").done = True

        out = serialize(parsed.tasks, parsed.group_order, parsed.group_titles, parsed.lines)

        assert out == "- [x] Buy milk\n## Done\n- [x] Ship release\n"

    def test_edit_keeps_indentation(self) -> None:
        parsed = parse("## Work\n    - [ ] old text\n")
        parsed.tasks[0].text = "new text"
        out = serialize(parsed.tasks, parsed.group_order, parsed.group_titles, parsed.lines)
        assert out == "## Work\n    - [ ] new text\n"

    def test_deleted_task_line_is_dropped(self) -> None:
        parsed = parse("- [ ] a\nnote\n- [ ] b\n")
        tasks = [t for t in parsed.tasks if t.text != "a"]
        out = serialize(tasks, parsed.group_order, parsed.group_titles, parsed.lines)
        assert out == "note\n- [ ] b\n"

    def test_deleted_group_section_is_suppressed(self) -> None:
        parsed = parse("Intro\n## Old\n- [ ] x\nnote under old\n## Keep\n- [ ] y\n")
        tasks = [t for t in parsed.tasks if t.group_id != "old"]
        out = serialize(tasks, ["", "keep"], parsed.group_titles, parsed.lines)
        assert out == "Intro\n## Keep\n- [ ] y\n"

    def test_renamed_group_keeps_heading_depth(self) -> None:
        parsed = parse("### Work\n- [ ] a\n")
        titles = dict(parsed.group_titles, work="Job")
        out = serialize(parsed.tasks, parsed.group_order, titles, parsed.lines)
        assert out == "### Job\n- [ ] a\n"

    def test_reorder_within_group_reaches_the_file(self) -> None:
        parsed = parse("- [ ] a\nnote\n- [ ] b\n")
        a, b = parsed.tasks
        out = serialize([b, a], parsed.group_order, parsed.group_titles, parsed.lines)
        assert out == "- [ ] b\nnote\n- [ ] a\n"

    def test_new_default_task_goes_above_first_heading(self) -> None:
        parsed = parse("Intro\n\n## Work\n- [ ] a\n")
        tasks = parsed.tasks + [Task(id="task-new", text="n")]
        out = serialize(tasks, parsed.group_order, parsed.group_titles, parsed.lines)

        assert out == "Intro\n- [ ] n\n\n## Work\n- [ ] a\n"
        assert _by_text(parse(out).tasks, "n").group_id == ""

    def test_new_default_task_at_top_of_file(self) -> None:
        parsed = parse("## Work\n- [ ] a\n")
        tasks = parsed.tasks + [Task(id="task-new", text="n")]
        out = serialize(tasks, parsed.group_order, parsed.group_titles, parsed.lines)
        assert out == "- [ ] n\n\n## Work\n- [ ] a\n"

    def test_new_default_task_without_headings_is_appended(self) -> None:
        parsed = parse("- [ ] a\n")
        tasks = parsed.tasks + [Task(id="task-new", text="n")]
        out = serialize(tasks, parsed.group_order, parsed.group_titles, parsed.lines)
        assert out == "- [ ] a\n\n- [ ] n\n"

    def test_new_task_in_existing_group_survives_reparse(self) -> None:
        parsed = parse("## Work\n- [ ] a\n")
        tasks = parsed.tasks + [Task(id="task-new", text="n", group_id="work")]
        out = serialize(tasks, parsed.group_order, parsed.group_titles, parsed.lines)

        assert out == "## Work\n- [ ] a\n\n## Work\n- [ ] n\n"
        assert [(t.text, t.group_id) for t in parse(out).tasks] == [("a", "work"), ("n", "work")]

    def test_new_empty_group_gets_a_heading(self) -> None:
        parsed = parse("- [ ] a\n")
        titles = dict(parsed.group_titles, later="Later")
        out = serialize(parsed.tasks, parsed.group_order + ["later"], titles, parsed.lines)
        assert out == "- [ ] a\n\n## Later\n"
        assert "later" in parse(out).group_order

    def test_task_moved_between_groups(self) -> None:
        parsed = parse("- [ ] a\n## Work\n- [ ] b\n")
        _by_text(parsed.tasks, "a").group_id = "work"
        out = serialize(parsed.tasks, parsed.group_order, parsed.group_titles, parsed.lines)

        assert out == "## Work\n- [ ] b\n\n## Work\n- [ ] a\n"
        assert {t.text: t.group_id for t in parse(out).tasks} == {"a": "work", "b": "work"}

    def test_foreign_lines_pass_through(self) -> None:
        parsed = parse("Intro text\n| table | row |\n```\ncode\n```\n- [ ] a\n")
        parsed.tasks[0].done = True
        out = serialize(parsed.tasks, parsed.group_order, parsed.group_titles, parsed.lines)
        assert out == "Intro text\n| table | row |\n```\ncode\n```\n- [x] a\n"


class TestMetadataBlock:
    def test_block_is_relocated_to_end(self) -> None:
        doc = "## Work\n- [ ] a\n%%\nmeta: 1\n%%\n## Later\n- [ ] b\n"
        parsed = parse(doc)
        _by_text(parsed.tasks, "b").done = True

        out = serialize(parsed.tasks, parsed.group_order, parsed.group_titles, parsed.lines)

        assert out == "## Work\n- [ ] a\n## Later\n- [x] b\n\n%%\nmeta: 1\n%%\n"
        assert out.endswith("%%\nmeta: 1\n%%\n")

    def test_block_stays_last_after_appendix(self) -> None:
        parsed = parse("- [ ] a\n\n%% settings %%\n")
        tasks = parsed.tasks + [Task(id="task-new", text="b", group_id="new")]
        titles = dict(parsed.group_titles, new="New")
        out = serialize(tasks, parsed.group_order + ["new"], titles, parsed.lines)
        assert out == "- [ ] a\n\n## New\n- [ ] b\n\n%% settings %%\n"

    def test_split_single_line_block(self) -> None:
        lines = parse("a\n%% one line %%\nb").lines
        block, rest = split_metadata_block(lines)
        assert block == ["%% one line %%"]
        assert [line.raw for line in rest] == ["a", "b"]

    def test_split_unterminated_block_runs_to_end(self) -> None:
        lines = parse("a\n%%\nb\nc").lines
        block, rest = split_metadata_block(lines)
        assert block == ["%%", "b", "c"]
        assert [line.raw for line in rest] == ["a"]

    def test_split_without_block(self) -> None:
        lines = parse("a\nb").lines
        block, rest = split_metadata_block(lines)
        assert block == []
        assert len(rest) == 2

    def test_checklist_inside_block_is_still_a_task(self) -> None:
        parsed = parse("%%\n- [ ] hidden\n%%\n")
        assert [t.text for t in parsed.tasks] == ["hidden"]


class TestDuplicateDivergence:
    def test_reordering_diverged_duplicates_swaps_their_ids(self) -> None:
        """Known edge case: duplicates are told apart only by position.

        When two identical lines differ in done state and the file swaps
        them, each id now points at the other line's state.
        """
        before = parse("- [ ] a\n- [x] a\n")
        after = parse("- [x] a\n- [ ] a\n")

        before_done = {t.id: t.done for t in before.tasks}
        after_done = {t.id: t.done for t in after.tasks}

        assert set(before_done) == set(after_done)
        assert all(after_done[task_id] != done for task_id, done in before_done.items())
