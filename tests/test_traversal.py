"""Tests for the TraversalController walking a scripted notes list."""
import logging

import pytest

from nimbus_tags.exceptions import IntegrityViolationError
from nimbus_tags.services.reconciler import Reconciler
from nimbus_tags.services.traversal import (
    StopReason,
    TraversalController,
    TraversalState,
    compile_skip_pattern,
    is_repeat_of_previous,
)
from tests.fakes import FakeItem, FakeItemScraper, RecordingReconciler, make_items


class TestEndOfList:

    def test_first_card_is_never_a_repeat(self):
        assert not is_repeat_of_previous(None, ("A", "1/1/2020", ""))

    def test_identical_triple_is_a_repeat(self):
        assert is_repeat_of_previous(("A", "1/1/2020", ""), ("A", "1/1/2020", ""))

    def test_any_difference_is_not_a_repeat(self):
        previous = ("A", "1/1/2020", "")
        assert not is_repeat_of_previous(previous, ("A", "1/2/2020", ""))
        assert not is_repeat_of_previous(previous, ("A", "1/1/2020", "x"))
        assert not is_repeat_of_previous(previous, ("B", "1/1/2020", ""))

    def test_repeating_last_card_stops_after_processing_it_once(self):
        scraper = FakeItemScraper(make_items("A", "B", "C"))
        reconciler = RecordingReconciler()

        result = TraversalController(scraper, reconciler).run()

        assert result.processed == ["A", "B", "C"]
        assert [title for title, _ in reconciler.notes()] == ["A", "B", "C"]
        assert result.stop_reason is StopReason.END_OF_LIST
        # A, B, C, then C again
        assert result.iterations == 4
        assert scraper.titles_read("summary") == ["A", "B", "C", "C"]
        assert scraper.titles_read("detail") == ["A", "B", "C"]

    def test_adjacent_identical_notes_end_the_walk_early(self):
        items = make_items("A", "Same", "Same", "D")
        scraper = FakeItemScraper(items)

        result = TraversalController(scraper, RecordingReconciler()).run()

        assert result.processed == ["A", "Same"]
        assert result.stop_reason is StopReason.END_OF_LIST

    def test_same_title_different_dates_are_both_processed(self):
        items = [FakeItem("Same", modified_date="1/1/2020"), FakeItem("Same", modified_date="1/2/2020")]
        result = TraversalController(FakeItemScraper(items), RecordingReconciler()).run()
        assert result.processed == ["Same", "Same"]

    def test_iteration_cap_is_a_soft_stop(self, caplog):
        scraper = FakeItemScraper(make_items("A", "B"), sticky_end=False)

        with caplog.at_level(logging.WARNING, logger="nimbus_tags"):
            result = TraversalController(scraper, RecordingReconciler(), max_iterations=5).run()

        assert result.stop_reason is StopReason.ITERATION_CAP
        assert result.iterations == 5
        assert result.processed == ["A", "B", "A", "B", "A"]
        assert "without reaching the end of the list" in caplog.text

    def test_single_note_list(self):
        result = TraversalController(FakeItemScraper(make_items("Only")), RecordingReconciler()).run()
        assert result.processed == ["Only"]
        assert result.iterations == 2

    def test_invalid_cap_rejected(self):
        with pytest.raises(ValueError):
            TraversalController(FakeItemScraper([]), RecordingReconciler(), max_iterations=0)


class TestSkipResume:

    def test_only_matching_note_and_later_are_stored(self):
        scraper = FakeItemScraper(make_items("A", "B", "C", "D"))
        reconciler = RecordingReconciler()

        result = TraversalController(scraper, reconciler, skip_pattern="C").run()

        assert result.skipped == ["A", "B"]
        assert result.processed == ["C", "D"]
        assert [title for title, _ in reconciler.notes()] == ["C", "D"]
        # A and B are visited but their other views are never read
        assert scraper.titles_read("summary")[:2] == ["A", "B"]
        assert scraper.titles_read("detail") == ["C", "D"]
        assert scraper.titles_read("tags") == ["C", "D"]
        assert result.skip_matched

    def test_skipped_notes_write_nothing(self, entity_store):
        scraper = FakeItemScraper(make_items("A", "B", "C", "D", tags=["x"]))

        TraversalController(scraper, Reconciler(entity_store), skip_pattern="C").run()

        listing = entity_store.list_notes()
        assert [n.title for n in listing] == ["C", "D"]
        assert entity_store.counts()["Tag2Notes"] == 2

    def test_pattern_is_case_insensitive_regex(self):
        items = make_items("Apple Pie", "Grilled Pizza", "Bread")
        result = TraversalController(
            FakeItemScraper(items), RecordingReconciler(), skip_pattern="^grilled"
        ).run()
        assert result.processed == ["Grilled Pizza", "Bread"]

    def test_later_notes_are_stored_even_if_they_do_not_match(self):
        items = make_items("A", "Pizza", "B", "Pizza 2")
        result = TraversalController(
            FakeItemScraper(items), RecordingReconciler(), skip_pattern="pizza"
        ).run()
        assert result.processed == ["Pizza", "B", "Pizza 2"]

    def test_unmatched_pattern_stores_nothing_and_warns(self, caplog):
        scraper = FakeItemScraper(make_items("A", "B"))
        reconciler = RecordingReconciler()

        with caplog.at_level(logging.WARNING, logger="nimbus_tags"):
            result = TraversalController(scraper, reconciler, skip_pattern="Z").run()

        assert result.processed == []
        assert reconciler.calls == []
        assert not result.skip_matched
        assert "No note title matched" in caplog.text

    def test_invalid_regex_matches_literally(self):
        matches = compile_skip_pattern("Pizza (grilled")
        assert matches("my pizza (Grilled) recipe")
        assert not matches("Pizza grilled")

    def test_state_machine(self):
        controller = TraversalController(
            FakeItemScraper(make_items("A", "B")), RecordingReconciler(), skip_pattern="B"
        )
        assert controller.state is TraversalState.START
        controller.run()
        assert controller.state is TraversalState.DONE


class TestCreationDate:

    def test_legacy_date_wins_verbatim(self):
        item = FakeItem(
            "A",
            legacy_creation_date="3/29/2007 9:10:16 PM",
            creation_date="11/28/2023, 1:00:00 AM",
        )
        reconciler = RecordingReconciler()
        TraversalController(FakeItemScraper([item]), reconciler).run()
        assert reconciler.notes() == [("A", "3/29/2007 9:10:16 PM")]

    def test_detail_date_loses_its_comma(self):
        item = FakeItem("A", creation_date="3/29/2007, 9:10:16 PM")
        reconciler = RecordingReconciler()
        TraversalController(FakeItemScraper([item]), reconciler).run()
        assert reconciler.notes() == [("A", "3/29/2007 9:10:16 PM")]

    def test_stored_note_carries_the_chosen_date(self, entity_store):
        items = [
            FakeItem("Old", legacy_creation_date="1/2/2003 4:05:06 AM"),
            FakeItem("New", creation_date="3/29/2007, 9:10:16 PM"),
        ]
        TraversalController(FakeItemScraper(items), Reconciler(entity_store)).run()
        dates = {n.title: n.creation_date for n in entity_store.list_notes()}
        assert dates == {"Old": "1/2/2003 4:05:06 AM", "New": "3/29/2007 9:10:16 PM"}


class TestProcessing:

    def test_note_folder_and_tags_reach_the_store(self, entity_store):
        items = [
            FakeItem("Bread", folder_name="Alton Brown", parent_path="HWDreamer", tags=["Baking", "Yeast"]),
            FakeItem("Pizza", folder_name="Alton Brown", parent_path="HWDreamer", tags=["Baking"]),
            FakeItem("Memo", folder_name="Alton Brown", parent_path="", tags=[]),
        ]

        result = TraversalController(FakeItemScraper(items), Reconciler(entity_store)).run()

        assert result.processed == ["Bread", "Pizza", "Memo"]
        assert entity_store.counts() == {
            "Folders": 2,
            "Notes": 3,
            "Tags": 2,
            "Folder2Notes": 3,
            "Tag2Notes": 3,
        }
        listing = {n.title: n for n in entity_store.list_notes()}
        assert listing["Bread"].tags == ["Baking", "Yeast"]
        assert listing["Pizza"].parent_path == "HWDreamer"
        assert listing["Memo"].parent_path == ""

    def test_reconciliation_order(self):
        reconciler = RecordingReconciler()
        item = FakeItem("A", folder_name="F", parent_path="P", tags=["t1", "t2"])

        TraversalController(FakeItemScraper([item]), reconciler).run()

        assert [c[0] for c in reconciler.calls] == ["note", "folder", "tag", "tag"]
        assert reconciler.calls[1] == ("folder", "F", "P", 1)
        assert reconciler.calls[2] == ("tag", "t1", 1)

    def test_duplicate_titles_become_two_notes(self, entity_store, recwarn):
        items = [FakeItem("Grilled Pizza", modified_date="1/1/2020"), FakeItem("Grilled Pizza", modified_date="1/2/2020")]
        TraversalController(FakeItemScraper(items), Reconciler(entity_store)).run()
        assert len(entity_store.find_notes_by_title("Grilled Pizza")) == 2


class TestFailures:

    @pytest.mark.parametrize("view", ["detail", "tags"])
    def test_unreadable_view_skips_only_that_note(self, entity_store, view):
        items = make_items("A", "B", "C", tags=["x"])
        items[1].failing_views = (view,)

        result = TraversalController(FakeItemScraper(items), Reconciler(entity_store)).run()

        assert result.processed == ["A", "C"]
        assert [title for title, _ in result.failed] == ["B"]
        assert [n.title for n in entity_store.list_notes()] == ["A", "C"]
        assert entity_store.counts()["Notes"] == 2

    def test_unreadable_summary_is_recorded_and_walk_continues(self):
        items = make_items("A", "B", "C")
        items[1].failing_views = ("summary",)

        result = TraversalController(FakeItemScraper(items), RecordingReconciler()).run()

        assert result.processed == ["A", "C"]
        assert len(result.failed) == 1
        assert result.stop_reason is StopReason.END_OF_LIST

    def test_failed_advance_ends_as_a_repeat(self):
        scraper = FakeItemScraper(make_items("A", "B", "C"))
        scraper.failing_advances = 1

        result = TraversalController(scraper, RecordingReconciler()).run()

        assert result.processed == ["A"]
        assert result.stop_reason is StopReason.END_OF_LIST

    def test_integrity_violation_aborts_but_keeps_earlier_notes(self, entity_store):
        entity_store.insert_folder("Broken", "")
        entity_store.insert_folder("Broken", "")
        items = [
            FakeItem("A", folder_name="Fine"),
            FakeItem("B", folder_name="Broken"),
            FakeItem("C", folder_name="Fine"),
        ]
        scraper = FakeItemScraper(items)

        with pytest.raises(IntegrityViolationError):
            TraversalController(scraper, Reconciler(entity_store)).run()

        assert [n.title for n in entity_store.list_notes("Fine")] == ["A"]
        assert "C" not in scraper.titles_read("summary")
