"""
Question variants.

Every survey question becomes exactly one of a closed set of variants.
Each variant knows three things:

    column_specs()  which table columns it needs, in order
    render()        the values for those columns, for one response
    import_type()   the readr column type of its answer columns

Column names use the question's export tag; answer lookups use its ID.
Given the same choices, a variant always produces the same columns in the
same order, and render() always returns one value per column, answered
or not.

    SingleChoice   Q1                     (factor)
    MultiSelect    Q4_1 Q4_2 ... Q4_2_text (logical / text)
    Matrix         Q5_row or Q5_row_point (factor or logical)
    RankOrder      RO_1 RO_2 ...          (ranked factor)
    PickGroupRank  PGR_c_GROUP PGR_c_RANK ...
    FixedScale     NPS                    (factor)
    TextEntry      Q7_text                (text)
    ConstantSum    CS_1 CS_2 ...          (double)
    Timing         T_first_click ...      (double / integer)
    EmbeddedData   <field name>
    Unsupported    Q9                     (raw pass-through)
"""
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Sequence, Tuple, Type

from qtab.model import Choice, Column, ColumnKind
from qtab.response import Response


# Values the platform writes for "shown but not answered".
NO_RESPONSE_CODES = frozenset({"-99"})
# Multi-select cells also use 0 for "not selected".
NO_SELECTION_CODES = frozenset({"-99", "0"})


class QuestionType(Enum):
    SINGLE_CHOICE = "SingleChoice"
    MULTI_SELECT = "MultiSelect"
    MATRIX = "Matrix"
    RANK_ORDER = "RankOrder"
    PICK_GROUP_RANK = "PickGroupRank"
    FIXED_SCALE = "FixedScale"
    TEXT_ENTRY = "TextEntry"
    CONSTANT_SUM = "ConstantSum"
    TIMING = "Timing"
    EMBEDDED_DATA = "EmbeddedData"
    UNSUPPORTED = "Unsupported"


_IMPORT_TYPES: Dict[ColumnKind, Optional[str]] = {
    ColumnKind.CATEGORICAL: "col_factor",
    ColumnKind.BOOLEAN: "col_logical",
    ColumnKind.RANK: "col_factor",
    ColumnKind.GROUP: "col_factor",
    ColumnKind.INTEGER: "col_integer",
    ColumnKind.DOUBLE: "col_double",
    ColumnKind.TEXT: None,
}


def import_type_for(kind: ColumnKind) -> Optional[str]:
    """readr column type for a column kind; None for free text."""
    return _IMPORT_TYPES[kind]


@dataclass(frozen=True)
class DynamicChoices:
    """
    Reference to another question whose choices this one reuses.

    Properties:
        source: ID of the question providing the choices
        kind: Inheritance kind, e.g. "SelectedChoices", "DisplayedChoices"
    """

    source: str
    kind: str

    RESOLVABLE_KINDS: ClassVar[Tuple[str, ...]] = ("DisplayedChoices", "SelectedChoices")

    @property
    def resolvable(self) -> bool:
        return self.kind in self.RESOLVABLE_KINDS


def _scalar(raw: str) -> str:
    return "" if raw in NO_RESPONSE_CODES else raw


def _selected(raw: str) -> str:
    if not raw or raw in NO_SELECTION_CODES:
        return ""
    return "TRUE"


def _value_label(raw: str, choices: Sequence[Choice]) -> str:
    raw = _scalar(raw)
    if not raw:
        return ""
    for c in choices:
        if c.id == raw:
            return c.var_name
    return raw


@dataclass(frozen=True)
class Question:
    """
    Base of all question variants.

    Properties:
        id:
            Question ID from the definition (e.g. "QID4"); prefix of answer keys

        export_tag:
            DataExportTag (e.g. "Q4"); prefix of column names

        text:
            Question text, for the codebook

        selector, sub_selector:
            Layout tags from the definition (e.g. "MAVR", "Likert"/"MultipleAnswer")

        choices:
            Ordered answer options (matrix: scale points)

        sub_questions:
            Ordered matrix rows

        groups:
            Group labels for pick-group-rank

        dynamic_choices:
            Set when choices are copied from another question at runtime

        ordered_choices:
            True if choices form an ordinal scale
    """

    id: str
    export_tag: str = ""
    text: str = ""
    selector: str = ""
    sub_selector: str = ""
    choices: Tuple[Choice, ...] = ()
    sub_questions: Tuple[Choice, ...] = ()
    groups: Tuple[str, ...] = ()
    dynamic_choices: Optional[DynamicChoices] = None
    ordered_choices: bool = False

    question_type: ClassVar[QuestionType]

    @property
    def prefix(self) -> str:
        return self.export_tag or self.id

    def column_specs(self) -> List[Column]:
        raise NotImplementedError

    def render(self, response: Response) -> List[str]:
        raise NotImplementedError

    def answer_kind(self) -> ColumnKind:
        raise NotImplementedError

    def columns(self) -> List[str]:
        """Column names, in table order."""
        return [c.name for c in self.column_specs()]

    def import_type(self) -> Optional[str]:
        """readr type of this question's answer columns."""
        return import_type_for(self.answer_kind())

    # Free-text companions share one layout across variants: one
    # <prefix>_<suffix>_text column per option with a text box, after all
    # answer columns, read from <id>_<option>_TEXT.

    def _text_specs(self, options: Sequence[Choice]) -> List[Column]:
        return [
            Column(f"{self.prefix}_{c.suffix}_text", ColumnKind.TEXT)
            for c in options if c.has_text
        ]

    def _text_values(self, response: Response, options: Sequence[Choice]) -> List[str]:
        return [
            response.get(f"{self.id}_{c.id}_TEXT")
            for c in options if c.has_text
        ]


@dataclass(frozen=True)
class SingleChoiceQuestion(Question):
    question_type: ClassVar[QuestionType] = QuestionType.SINGLE_CHOICE

    def answer_kind(self) -> ColumnKind:
        return ColumnKind.CATEGORICAL

    def column_specs(self) -> List[Column]:
        return [Column(self.prefix, ColumnKind.CATEGORICAL)] + self._text_specs(self.choices)

    def render(self, response: Response) -> List[str]:
        value = _value_label(response.get(self.id), self.choices)
        return [value] + self._text_values(response, self.choices)


@dataclass(frozen=True)
class MultiSelectQuestion(Question):
    """One logical column per choice: TRUE when selected, empty otherwise."""

    question_type: ClassVar[QuestionType] = QuestionType.MULTI_SELECT

    def answer_kind(self) -> ColumnKind:
        return ColumnKind.BOOLEAN

    def column_specs(self) -> List[Column]:
        cols = [Column(f"{self.prefix}_{c.suffix}", ColumnKind.BOOLEAN) for c in self.choices]
        return cols + self._text_specs(self.choices)

    def render(self, response: Response) -> List[str]:
        values = [_selected(response.get(f"{self.id}_{c.id}")) for c in self.choices]
        return values + self._text_values(response, self.choices)


@dataclass(frozen=True)
class MatrixQuestion(Question):
    """
    Grid of rows (sub_questions) by scale points (choices).

    Single-answer matrices export one factor column per row.
    Multiple-answer matrices export one logical column per row × scale point.
    """

    question_type: ClassVar[QuestionType] = QuestionType.MATRIX

    @property
    def multiple_answer(self) -> bool:
        return self.sub_selector == "MultipleAnswer"

    def answer_kind(self) -> ColumnKind:
        return ColumnKind.BOOLEAN if self.multiple_answer else ColumnKind.CATEGORICAL

    def column_specs(self) -> List[Column]:
        if self.multiple_answer:
            cols = [
                Column(f"{self.prefix}_{row.suffix}_{point.suffix}", ColumnKind.BOOLEAN)
                for row in self.sub_questions
                for point in self.choices
            ]
        else:
            cols = [
                Column(f"{self.prefix}_{row.suffix}", ColumnKind.CATEGORICAL)
                for row in self.sub_questions
            ]
        return cols + self._text_specs(self.sub_questions)

    def render(self, response: Response) -> List[str]:
        if self.multiple_answer:
            values = [
                _selected(response.get(f"{self.id}_{row.id}_{point.id}"))
                for row in self.sub_questions
                for point in self.choices
            ]
        else:
            values = [
                _value_label(response.get(f"{self.id}_{row.id}"), self.choices)
                for row in self.sub_questions
            ]
        return values + self._text_values(response, self.sub_questions)


@dataclass(frozen=True)
class RankOrderQuestion(Question):
    question_type: ClassVar[QuestionType] = QuestionType.RANK_ORDER

    def answer_kind(self) -> ColumnKind:
        return ColumnKind.RANK

    def column_specs(self) -> List[Column]:
        cols = [Column(f"{self.prefix}_{c.suffix}", ColumnKind.RANK) for c in self.choices]
        return cols + self._text_specs(self.choices)

    def render(self, response: Response) -> List[str]:
        values = [_scalar(response.get(f"{self.id}_{c.id}")) for c in self.choices]
        return values + self._text_values(response, self.choices)


@dataclass(frozen=True)
class PickGroupRankQuestion(Question):
    """
    Items sorted into groups and ranked within their group.

    Each item gets a _GROUP column (group label) and a _RANK column (position
    inside that group). The export records item c placed at rank r in group
    g (0-based) as <id>_<g>_<c>_RANK = r. Items left out of every group
    render empty.
    """

    question_type: ClassVar[QuestionType] = QuestionType.PICK_GROUP_RANK

    def answer_kind(self) -> ColumnKind:
        return ColumnKind.GROUP

    def column_specs(self) -> List[Column]:
        cols: List[Column] = []
        for c in self.choices:
            cols.append(Column(f"{self.prefix}_{c.suffix}_GROUP", ColumnKind.GROUP))
            cols.append(Column(f"{self.prefix}_{c.suffix}_RANK", ColumnKind.RANK))
        return cols + self._text_specs(self.choices)

    def render(self, response: Response) -> List[str]:
        values: List[str] = []
        for c in self.choices:
            group, rank = "", ""
            for index, label in enumerate(self.groups):
                raw = _scalar(response.get(f"{self.id}_{index}_{c.id}_RANK"))
                if raw:
                    group, rank = label, raw
                    break
            values.extend([group, rank])
        return values + self._text_values(response, self.choices)


@dataclass(frozen=True)
class FixedScaleQuestion(Question):
    """0-10 scales (net promoter style); the answer is the scale value itself."""

    question_type: ClassVar[QuestionType] = QuestionType.FIXED_SCALE

    def answer_kind(self) -> ColumnKind:
        return ColumnKind.CATEGORICAL

    def column_specs(self) -> List[Column]:
        return [Column(self.prefix, ColumnKind.CATEGORICAL)]

    def render(self, response: Response) -> List[str]:
        return [_scalar(response.get(self.id))]


@dataclass(frozen=True)
class TextEntryQuestion(Question):
    question_type: ClassVar[QuestionType] = QuestionType.TEXT_ENTRY

    @property
    def is_form(self) -> bool:
        return self.selector == "FORM"

    def answer_kind(self) -> ColumnKind:
        return ColumnKind.TEXT

    def column_specs(self) -> List[Column]:
        if self.is_form:
            return [Column(f"{self.prefix}_{c.suffix}", ColumnKind.TEXT) for c in self.choices]
        return [Column(f"{self.prefix}_text", ColumnKind.TEXT)]

    def render(self, response: Response) -> List[str]:
        if self.is_form:
            return [response.get(f"{self.id}_{c.id}_TEXT") for c in self.choices]
        return [response.get(f"{self.id}_TEXT")]


@dataclass(frozen=True)
class ConstantSumQuestion(Question):
    question_type: ClassVar[QuestionType] = QuestionType.CONSTANT_SUM

    def answer_kind(self) -> ColumnKind:
        return ColumnKind.DOUBLE

    def column_specs(self) -> List[Column]:
        cols = [Column(f"{self.prefix}_{c.suffix}", ColumnKind.DOUBLE) for c in self.choices]
        return cols + self._text_specs(self.choices)

    def render(self, response: Response) -> List[str]:
        values = [_scalar(response.get(f"{self.id}_{c.id}")) for c in self.choices]
        return values + self._text_values(response, self.choices)


# (column suffix, answer key suffix, kind)
TIMER_FIELDS: Tuple[Tuple[str, str, ColumnKind], ...] = (
    ("first_click", "FIRST_CLICK", ColumnKind.DOUBLE),
    ("last_click", "LAST_CLICK", ColumnKind.DOUBLE),
    ("page_submit", "PAGE_SUBMIT", ColumnKind.DOUBLE),
    ("click_count", "CLICK_COUNT", ColumnKind.INTEGER),
)


@dataclass(frozen=True)
class TimingQuestion(Question):
    """Page timer: seconds to first/last click and submit, plus a click count."""

    question_type: ClassVar[QuestionType] = QuestionType.TIMING

    def answer_kind(self) -> ColumnKind:
        return ColumnKind.DOUBLE

    def column_specs(self) -> List[Column]:
        return [Column(f"{self.prefix}_{name}", kind) for name, _, kind in TIMER_FIELDS]

    def render(self, response: Response) -> List[str]:
        return [_scalar(response.get(f"{self.id}_{key}")) for _, key, _ in TIMER_FIELDS]


NUMERIC_VARIABLE_TYPES = frozenset({"Number", "Scale"})


@dataclass(frozen=True)
class EmbeddedDataQuestion(Question):
    """
    An embedded-data field exported as a column.

    The field name is the question ID, the export tag and the answer key.
    """

    variable_type: str = ""

    question_type: ClassVar[QuestionType] = QuestionType.EMBEDDED_DATA

    def answer_kind(self) -> ColumnKind:
        if self.variable_type in NUMERIC_VARIABLE_TYPES:
            return ColumnKind.DOUBLE
        return ColumnKind.TEXT

    def column_specs(self) -> List[Column]:
        return [Column(self.prefix, self.answer_kind())]

    def render(self, response: Response) -> List[str]:
        return [response.get(self.id)]


@dataclass(frozen=True)
class UnsupportedQuestion(Question):
    """Any other question type; its raw answer is passed through as text."""

    question_type: ClassVar[QuestionType] = QuestionType.UNSUPPORTED

    def answer_kind(self) -> ColumnKind:
        return ColumnKind.TEXT

    def column_specs(self) -> List[Column]:
        return [Column(self.prefix, ColumnKind.TEXT)]

    def render(self, response: Response) -> List[str]:
        return [response.get(self.id)]


QUESTION_CLASSES: Dict[QuestionType, Type[Question]] = {
    cls.question_type: cls
    for cls in (
        SingleChoiceQuestion,
        MultiSelectQuestion,
        MatrixQuestion,
        RankOrderQuestion,
        PickGroupRankQuestion,
        FixedScaleQuestion,
        TextEntryQuestion,
        ConstantSumQuestion,
        TimingQuestion,
        EmbeddedDataQuestion,
        UnsupportedQuestion,
    )
}

MULTI_SELECT_SELECTORS = frozenset({"MAVR", "MAHR", "MACOL", "MSB"})
FIXED_SCALE_SELECTORS = frozenset({"NPS"})

_TYPE_BY_TAG: Dict[str, QuestionType] = {
    "Matrix": QuestionType.MATRIX,
    "RO": QuestionType.RANK_ORDER,
    "PGR": QuestionType.PICK_GROUP_RANK,
    "TE": QuestionType.TEXT_ENTRY,
    "CS": QuestionType.CONSTANT_SUM,
    "Timing": QuestionType.TIMING,
    "NPS": QuestionType.FIXED_SCALE,
}


def question_type_for(question_type: str, selector: str = "") -> QuestionType:
    """
    Map the definition's QuestionType/Selector tags onto a variant.

    Multiple choice splits on the selector: MA* selectors allow several
    answers, NPS is a fixed scale, everything else is single choice.
    Unknown tags map to UNSUPPORTED.
    """
    if question_type == "MC":
        if selector in FIXED_SCALE_SELECTORS:
            return QuestionType.FIXED_SCALE
        if selector in MULTI_SELECT_SELECTORS:
            return QuestionType.MULTI_SELECT
        return QuestionType.SINGLE_CHOICE
    return _TYPE_BY_TAG.get(question_type, QuestionType.UNSUPPORTED)


def question_class_for(question_type: str, selector: str = "") -> Type[Question]:
    return QUESTION_CLASSES[question_type_for(question_type, selector)]


__all__ = [
    "QuestionType",
    "Question",
    "DynamicChoices",
    "SingleChoiceQuestion",
    "MultiSelectQuestion",
    "MatrixQuestion",
    "RankOrderQuestion",
    "PickGroupRankQuestion",
    "FixedScaleQuestion",
    "TextEntryQuestion",
    "ConstantSumQuestion",
    "TimingQuestion",
    "EmbeddedDataQuestion",
    "UnsupportedQuestion",
    "QUESTION_CLASSES",
    "TIMER_FIELDS",
    "import_type_for",
    "question_type_for",
    "question_class_for",
]
