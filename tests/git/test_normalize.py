"""Tests for the porcelain code classifier."""

import pytest

from gitward.git.normalize import UNMERGED_PAIRS, normalize_status


class TestNormalizeStatus:
    @pytest.mark.parametrize("pair", sorted(UNMERGED_PAIRS))
    def test_unmerged_pairs_are_conflicted(self, pair):
        assert normalize_status(pair[0], pair[1]) == "conflicted"

    def test_added_by_both_is_not_added(self):
        assert normalize_status("A", "A") == "conflicted"

    def test_deleted_by_both_is_not_deleted(self):
        assert normalize_status("D", "D") == "conflicted"

    def test_untracked_either_side(self):
        assert normalize_status(" ", "?") == "untracked"
        assert normalize_status("?", " ") == "untracked"
        assert normalize_status("?", "?") == "untracked"

    def test_ignored_wins_over_everything(self):
        assert normalize_status("!", "!") == "ignored"
        assert normalize_status("!", "?") == "ignored"
        assert normalize_status("U", "!") == "ignored"

    def test_untracked_wins_over_conflict(self):
        assert normalize_status("?", "U") == "untracked"

    def test_single_u_is_conflicted(self):
        assert normalize_status("U", " ") == "conflicted"
        assert normalize_status("M", "U") == "conflicted"

    def test_renamed_beats_modified(self):
        assert normalize_status("R", "M") == "renamed"
        assert normalize_status("R", " ") == "renamed"

    def test_added_then_modified(self):
        assert normalize_status("A", "M") == "added"

    def test_added_then_deleted_is_added(self):
        # AD is not an unmerged pair, so the "A" rule fires first.
        assert normalize_status("A", "D") == "added"

    def test_deleted(self):
        assert normalize_status("D", " ") == "deleted"
        assert normalize_status(" ", "D") == "deleted"
        assert normalize_status("M", "D") == "deleted"

    def test_modified(self):
        assert normalize_status("M", " ") == "modified"
        assert normalize_status(" ", "M") == "modified"
        assert normalize_status("M", "M") == "modified"

    def test_unknown_codes(self):
        assert normalize_status("T", " ") == "unknown"
        assert normalize_status("C", " ") == "unknown"
        assert normalize_status(" ", " ") == "unknown"

    def test_empty_codes_treated_as_blank(self):
        assert normalize_status("", "?") == "untracked"
        assert normalize_status("", "") == "unknown"
