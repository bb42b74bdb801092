"""
Core qtab model objects.

Defines the value types shared by the parser and the backends:
    - Choice (one answer option, matrix row, or form field)
    - Column (one exported table column and its kind)
    - Survey (root container)

Question variants live in qtab.questions and responses in qtab.response;
both are owned by a Survey.

ARCHITECTURAL RULE:
    These objects know nothing about CSV or R syntax.
    Backends derive everything they write from a finalized Survey.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional

if TYPE_CHECKING:
    from qtab.questions import Question
    from qtab.response import Response


@dataclass(frozen=True)
class Choice:
    """
    One option of a question.

    The same type describes answer choices, matrix rows (sub-questions) and
    matrix scale points, so copies can move between questions when dynamic
    choices are resolved.

    Properties:
        id:
            Choice key from the definition, as a string ("1", "4")

        label:
            Display text

        var_name:
            Value label written to the table and to factor levels.
            Falls back to label when the definition has none.

        has_text:
            True if the option carries a free-text box

        export_tag:
            Name defined for the option (ChoiceDataExportTags on matrix rows,
            VariableNaming on answer options). Column suffix when set;
            answer keys always use id.
    """

    id: str
    label: str = ""
    var_name: str = ""
    has_text: bool = False
    export_tag: Optional[str] = None

    def __post_init__(self):
        if not self.var_name:
            object.__setattr__(self, "var_name", self.label)

    @property
    def suffix(self) -> str:
        """Column name suffix for this choice."""
        return self.export_tag or self.id


class ColumnKind(Enum):
    """What an exported column holds; drives the import type."""

    CATEGORICAL = "categorical"
    BOOLEAN = "boolean"
    RANK = "rank"
    GROUP = "group"
    INTEGER = "integer"
    DOUBLE = "double"
    TEXT = "text"


@dataclass(frozen=True)
class Column:
    name: str
    kind: ColumnKind


# Fixed leading columns of every table, in order.
RESPONSE_COLUMNS = ("id", "finished", "progress", "duration")


@dataclass
class Survey:
    """
    Root container for a parsed survey and its responses.

    Everything the backends write (table, import script, codebook) is derived
    from this object.

    Properties:
        title, description, status:
            SurveyEntry metadata

        created_on, launched_on, modified_on:
            SurveyEntry timestamps, None when absent or unparseable

        question_order:
            Question IDs in export order: block/flow order first,
            embedded-data fields last. Trashed questions never appear.

        questions:
            Question ID → Question

        responses:
            Responses in document order

    INVARIANTS:
        - Every ID in question_order is a key of questions
        - Questions are resolved (dynamic choices copied) before export
    """

    title: str = ""
    description: str = ""
    status: str = ""
    created_on: Optional[datetime] = None
    launched_on: Optional[datetime] = None
    modified_on: Optional[datetime] = None
    question_order: List[str] = field(default_factory=list)
    questions: Dict[str, "Question"] = field(default_factory=dict)
    responses: List["Response"] = field(default_factory=list)

    def get_question(self, question_id: str) -> Optional["Question"]:
        """
        Retrieve a question by ID.

        Args:
            question_id: Question identifier (e.g. "QID4")

        Returns:
            Question object or None if not found
        """
        return self.questions.get(question_id)

    def ordered_questions(self) -> Iterator["Question"]:
        """Yield questions in export order."""
        for question_id in self.question_order:
            yield self.questions[question_id]

    def columns(self) -> List[str]:
        """Full table header: fixed response columns, then question columns."""
        cols = list(RESPONSE_COLUMNS)
        for question in self.ordered_questions():
            cols.extend(question.columns())
        return cols
