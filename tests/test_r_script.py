"""
Tests for the R import script generator.

Most assertions are on the script text, line by line, the way an R user
would read it.
"""

import hashlib
import io

import pytest

from qtab import __version__
from qtab.backends.r_script import (
    column_levels,
    generate_r_script,
    r_name,
    r_string,
    scale_id,
    write_r_script,
)
from qtab.config import ExportOptions
from qtab.errors import PreconditionError, StreamIOError
from qtab.model import Choice, Survey
from qtab.questions import (
    EmbeddedDataQuestion,
    FixedScaleQuestion,
    MatrixQuestion,
    PickGroupRankQuestion,
    RankOrderQuestion,
    SingleChoiceQuestion,
    TextEntryQuestion,
    TimingQuestion,
)


def labels(*names):
    return tuple(Choice(str(i), n) for i, n in enumerate(names, start=1))


def survey_of(*questions) -> Survey:
    return Survey(
        question_order=[q.id for q in questions],
        questions={q.id: q for q in questions},
    )


def sha(text: str) -> str:
    return "scale_" + hashlib.sha1(text.encode("utf-8")).hexdigest()


def scale_lines(script: str):
    return [line for line in script.splitlines() if line.startswith("scale_")]


class TestScriptLayout:
    """Preamble, import statement and teardown."""

    def test_preamble(self, scenario_survey):
        lines = generate_r_script(scenario_survey, "survey.csv").splitlines()
        assert lines[0] == f"# Generated by qtab {__version__}"
        assert lines[1] == "library(readr)"
        assert lines[3] == 'input_path <- "survey.csv"'

    def test_fixed_columns_first(self, scenario_survey):
        script = generate_r_script(scenario_survey, "survey.csv")
        assert (
            "data <- read_csv(input_path, col_types = cols(\n"
            "  finished = col_logical(),\n"
            "  progress = col_integer(),\n"
            "  duration = col_integer(),\n"
        ) in script

    def test_scenario_clauses(self, scenario_survey):
        script = generate_r_script(scenario_survey, "survey.csv")
        q1_scale = sha("YesNoMaybeNo response")
        assert f'{q1_scale} <- c("Yes", "No", "Maybe", "No response")' in script
        assert f"  Q1 = col_factor(levels = {q1_scale}),\n" in script
        assert "  Q4_1 = col_logical(),\n" in script
        assert "  Q4_4 = col_logical()\n))" in script

    def test_text_columns_have_no_clause(self, scenario_survey):
        script = generate_r_script(scenario_survey, "survey.csv")
        assert "Q4_2_text" not in script

    def test_teardown(self, scenario_survey):
        lines = generate_r_script(scenario_survey, "survey.csv").splitlines()
        assert lines[-2] == "rm(input_path)"
        assert lines[-1] == f"rm({sha('YesNoMaybeNo response')})"

    def test_r_library_option(self, scenario_survey):
        script = generate_r_script(scenario_survey, "x.csv", ExportOptions(r_library="vroom"))
        assert "library(vroom)" in script

    def test_deterministic(self, scenario_survey):
        assert generate_r_script(scenario_survey, "a.csv") == generate_r_script(scenario_survey, "a.csv")


class TestScaleDeduplication:

    def test_identical_labels_share_one_scale(self):
        survey = survey_of(
            SingleChoiceQuestion(id="QID1", export_tag="Q1", choices=labels("A", "B", "C")),
            SingleChoiceQuestion(id="QID2", export_tag="Q2", choices=labels("A", "B", "C")),
        )
        script = generate_r_script(survey, "t.csv")
        name = sha("ABCNo response")

        assert scale_lines(script) == [f'{name} <- c("A", "B", "C", "No response")']
        assert f"Q1 = col_factor(levels = {name})" in script
        assert f"Q2 = col_factor(levels = {name})" in script
        assert script.count(f"rm({name})") == 1

    def test_different_order_distinct_scales(self):
        survey = survey_of(
            SingleChoiceQuestion(id="QID1", export_tag="Q1", choices=labels("A", "B")),
            SingleChoiceQuestion(id="QID2", export_tag="Q2", choices=labels("B", "A")),
        )
        script = generate_r_script(survey, "t.csv")
        assert len(scale_lines(script)) == 2
        assert script.count("rm(scale_") == 2

    def test_scales_sorted_by_name(self):
        survey = survey_of(
            SingleChoiceQuestion(id="QID1", export_tag="Q1", choices=labels("Z")),
            SingleChoiceQuestion(id="QID2", export_tag="Q2", choices=labels("Y")),
            SingleChoiceQuestion(id="QID3", export_tag="Q3", choices=labels("X")),
        )
        declared = [line.split(" ")[0] for line in scale_lines(generate_r_script(survey, "t.csv"))]
        assert declared == sorted(declared)

    def test_existing_sentinel_not_duplicated(self):
        q = SingleChoiceQuestion(id="QID1", export_tag="Q1", choices=labels("A", "No response"))
        script = generate_r_script(survey_of(q), "t.csv")
        assert scale_lines(script) == [f'{sha("ANo response")} <- c("A", "No response")']

    def test_matrix_rows_share_scale(self):
        q = MatrixQuestion(id="QID5", export_tag="Q5", selector="Likert",
                           choices=labels("Poor", "Good"), sub_questions=labels("Cost", "Time"),
                           ordered_choices=True)
        script = generate_r_script(survey_of(q), "t.csv")
        name = sha("PoorGoodNo response")
        assert len(scale_lines(script)) == 1
        assert f"Q5_1 = col_factor(levels = {name}, ordered = TRUE)" in script
        assert f"Q5_2 = col_factor(levels = {name}, ordered = TRUE)" in script

    def test_levels_written_as_var_names(self):
        q = SingleChoiceQuestion(id="QID1", export_tag="Q1",
                                 choices=(Choice("1", "Strongly agree", var_name="agree"),))
        script = generate_r_script(survey_of(q), "t.csv")
        assert scale_lines(script) == [f'{sha("Strongly agreeNo response")} <- c("agree", "No response")']


class TestLevels:
    """Rank, group and empty level sets."""

    def test_rank_levels(self):
        q = RankOrderQuestion(id="QID6", export_tag="Q6", choices=labels("Car", "Bus", "Bike"))
        levels, ordered = column_levels(q, q.column_specs()[0], ExportOptions())
        assert [c.label for c in levels] == ["1", "2", "3", "No response"]
        assert ordered

        script = generate_r_script(survey_of(q), "t.csv")
        assert f"Q6_1 = col_factor(levels = {sha('123No response')}, ordered = TRUE)" in script

    def test_group_levels(self):
        q = PickGroupRankQuestion(id="QID7", export_tag="Q7", choices=labels("A", "B"),
                                  groups=("Like", "Dislike"))
        group_col, rank_col = q.column_specs()[:2]

        levels, ordered = column_levels(q, group_col, ExportOptions())
        assert [c.label for c in levels] == ["Like", "Dislike", "Not grouped", "No response"]
        assert not ordered

        levels, _ = column_levels(q, rank_col, ExportOptions())
        assert [c.label for c in levels] == ["1", "2", "No response"]

    def test_custom_sentinels(self):
        q = PickGroupRankQuestion(id="QID7", export_tag="Q7", choices=labels("A"), groups=("G",))
        options = ExportOptions(no_response_label="NR", not_grouped_label="NG")
        levels, _ = column_levels(q, q.column_specs()[0], options)
        assert [c.label for c in levels] == ["G", "NG", "NR"]

    def test_no_choices_plain_factor(self):
        q = FixedScaleQuestion(id="QID8", export_tag="NPS")
        script = generate_r_script(survey_of(q), "t.csv")
        assert "NPS = col_factor()" in script
        assert scale_lines(script) == []

    def test_other_column_types(self):
        survey = survey_of(
            TimingQuestion(id="QID9", export_tag="T"),
            EmbeddedDataQuestion(id="age", export_tag="age", variable_type="Number"),
            TextEntryQuestion(id="QID10", export_tag="Q10"),
        )
        script = generate_r_script(survey, "t.csv")
        assert "T_first_click = col_double()" in script
        assert "T_click_count = col_integer()" in script
        assert "age = col_double()" in script
        assert "Q10_text" not in script


class TestQuoting:

    def test_r_string_escapes(self):
        assert r_string('say "hi"') == '"say \\"hi\\""'
        assert r_string("C:\\data") == '"C:\\\\data"'

    @pytest.mark.parametrize("name", ["Q1", "Q4_2_text", "age", ".hidden"])
    def test_syntactic_names_bare(self, name):
        assert r_name(name) == name

    @pytest.mark.parametrize("name, quoted", [
        ("1st", "`1st`"),
        ("my field", "`my field`"),
        ("if", "`if`"),
        ("_x", "`_x`"),
        (".2", "`.2`"),
    ])
    def test_non_syntactic_names_backquoted(self, name, quoted):
        assert r_name(name) == quoted

    def test_label_with_quotes_escaped_in_scale(self):
        q = SingleChoiceQuestion(id="QID1", export_tag="Q1", choices=labels('The "best"'))
        script = generate_r_script(survey_of(q), "t.csv")
        assert 'c("The \\"best\\"", "No response")' in script

    def test_embedded_field_name_backquoted(self):
        q = EmbeddedDataQuestion(id="Panel ID", export_tag="Panel ID", variable_type="Number")
        assert "`Panel ID` = col_double()" in generate_r_script(survey_of(q), "t.csv")

    def test_scale_id_hashes_labels(self):
        assert scale_id(labels("A", "B")) == sha("AB")


class TestWriteScript:

    def test_write_matches_generate(self, scenario_survey):
        sink = io.StringIO()
        write_r_script(scenario_survey, sink, "survey.csv")
        assert sink.getvalue() == generate_r_script(scenario_survey, "survey.csv")

    def test_none_sink(self, scenario_survey):
        with pytest.raises(PreconditionError):
            write_r_script(scenario_survey, None, "survey.csv")

    def test_closed_sink(self, scenario_survey):
        sink = io.StringIO()
        sink.close()
        with pytest.raises(PreconditionError):
            write_r_script(scenario_survey, sink, "survey.csv")

    def test_write_failure(self, scenario_survey):
        class FullDisk(io.StringIO):
            def write(self, s):
                raise OSError("No space left on device")

        with pytest.raises(StreamIOError):
            write_r_script(scenario_survey, FullDisk(), "survey.csv")
