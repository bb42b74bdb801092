"""
Tests for answer-key normalization and Response answer storage.
"""

import pytest

from qtab.errors import AnswerConflictError, QtabError
from qtab.response import Response, normalize_answer_key


class TestNormalizeAnswerKey:
    """Loop-and-merge and dynamic-choice key rewriting."""

    def test_plain_keys_unchanged(self):
        assert normalize_answer_key("QID1") == "QID1"
        assert normalize_answer_key("QID4_2_TEXT") == "QID4_2_TEXT"
        assert normalize_answer_key("site") == "site"

    def test_loop_prefix_dropped(self):
        assert normalize_answer_key("_2_QID5") == "QID5"
        assert normalize_answer_key("_12_QID5_3") == "QID5_3"

    def test_loop_iteration_suffix_dropped(self):
        assert normalize_answer_key("_2_QID5-1") == "QID5"
        assert normalize_answer_key("_3_QID5_4-12") == "QID5_4"

    def test_dynamic_choice_marker_dropped(self):
        assert normalize_answer_key("QID7_x3") == "QID7_3"
        assert normalize_answer_key("QID7_x3_TEXT") == "QID7_3_TEXT"

    def test_loop_and_dynamic_combined(self):
        assert normalize_answer_key("_1_QID5_x3") == "QID5_3"

    @pytest.mark.parametrize("key", [
        "_2_QID9_FIRST_CLICK",
        "_2_QID9_LAST_CLICK",
        "_2_QID9_PAGE_SUBMIT",
        "_2_QID9_CLICK_COUNT",
    ])
    def test_loop_timer_fields_kept_per_iteration(self, key):
        assert normalize_answer_key(key) == key

    def test_timer_outside_loop_unchanged(self):
        assert normalize_answer_key("QID9_PAGE_SUBMIT") == "QID9_PAGE_SUBMIT"

    def test_x_not_followed_by_digits_is_not_dynamic(self):
        assert normalize_answer_key("QID7_xa") == "QID7_xa"

    @pytest.mark.parametrize("key", [
        "QID1", "_2_QID5-1", "QID7_x3_TEXT", "_1_QID5_x3",
        "_2_QID9_PAGE_SUBMIT", "Q_TotalDuration", "_4_QID8_2_TEXT",
    ])
    def test_idempotent(self, key):
        once = normalize_answer_key(key)
        assert normalize_answer_key(once) == once


class TestResponseAnswers:
    """add_answer / get semantics."""

    def test_add_returns_normalized_key(self):
        r = Response(id="R_1")
        assert r.add_answer("_2_QID5", "3") == "QID5"
        assert r.get("QID5") == "3"

    def test_missing_answer_is_empty(self):
        r = Response(id="R_1")
        assert r.get("QID1") == ""
        assert not r.has_answer("QID1")

    def test_none_value_stored_as_empty(self):
        r = Response(id="R_1")
        r.add_answer("QID1", None)
        assert r.get("QID1") == ""

    def test_empty_value_does_not_replace_existing(self):
        r = Response(id="R_1")
        r.add_answer("_1_QID5", "2")
        r.add_answer("_2_QID5", "")
        assert r.get("QID5") == "2"

    def test_value_fills_earlier_empty(self):
        r = Response(id="R_1")
        r.add_answer("_1_QID5", "")
        r.add_answer("_2_QID5", "4")
        assert r.get("QID5") == "4"

    def test_conflict_raises(self):
        r = Response(id="R_9")
        r.add_answer("_1_QID5", "2")
        with pytest.raises(AnswerConflictError) as exc_info:
            r.add_answer("_2_QID5", "3")

        err = exc_info.value
        assert err.key == "QID5"
        assert err.existing == "2"
        assert err.new == "3"
        assert "R_9" in str(err)
        assert r.get("QID5") == "2"

    def test_conflict_is_not_a_recoverable_error(self):
        assert not issubclass(AnswerConflictError, QtabError)
        assert issubclass(AnswerConflictError, RuntimeError)

    def test_loop_timers_do_not_conflict(self):
        r = Response(id="R_1")
        r.add_answer("_1_QID9_PAGE_SUBMIT", "3.2")
        r.add_answer("_2_QID9_PAGE_SUBMIT", "4.8")
        assert len(r.answers) == 2

    def test_answers_view_is_read_only(self):
        r = Response(id="R_1")
        r.add_answer("QID1", "1")
        with pytest.raises(TypeError):
            r.answers["QID1"] = "2"
