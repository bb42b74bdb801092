"""
R import script generator.

Emits a readr script that loads the CSV written by csv_writer with every
column typed to match it:

    # Generated by qtab 0.3.0
    library(readr)

    input_path <- "survey.csv"
    scale_3f1c... <- c("Yes", "No", "No response")

    message(sprintf("Reading %s...", input_path))
    data <- read_csv(input_path, col_types = cols(
      finished = col_logical(),
      progress = col_integer(),
      duration = col_integer(),
      Q1 = col_factor(levels = scale_3f1c...),
      Q2 = col_factor(levels = scale_3f1c...)
    ))

    rm(input_path)
    rm(scale_3f1c...)

Factor columns share level vectors ("scales"). A scale is named after the
SHA-1 of its concatenated labels, so questions with the same labels in the
same order share one scale no matter which question came first. Scales are
declared and removed in name order, so output is deterministic.

Clauses follow CSV header order. Free-text columns get no clause and are
left to readr's default (character).
"""
import hashlib
import re
from typing import IO, Dict, List, Optional, Sequence, Tuple

from qtab import __version__
from qtab.backends.csv_writer import check_sink
from qtab.config import ExportOptions
from qtab.errors import StreamIOError
from qtab.model import Choice, Column, ColumnKind, Survey
from qtab.questions import Question, import_type_for


FIXED_COLUMN_TYPES: Tuple[Tuple[str, str], ...] = (
    ("finished", "col_logical()"),
    ("progress", "col_integer()"),
    ("duration", "col_integer()"),
)

_R_NAME_RE = re.compile(r"^(?:[A-Za-z]|\.(?![0-9]))[A-Za-z0-9._]*$")
_R_RESERVED = frozenset({
    "if", "else", "repeat", "while", "function", "for", "in", "next", "break",
    "TRUE", "FALSE", "NULL", "Inf", "NaN", "NA",
    "NA_integer_", "NA_real_", "NA_complex_", "NA_character_",
})

Scales = Dict[str, Tuple[Choice, ...]]


def r_string(s: str) -> str:
    """Quote s as an R string literal."""
    s = s.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n").replace("\r", "\\r")
    return f'"{s}"'


def r_name(name: str) -> str:
    """Column name usable inside cols(); backquoted unless syntactic."""
    if _R_NAME_RE.match(name) and name not in _R_RESERVED:
        return name
    return "`" + name.replace("\\", "\\\\").replace("`", "\\`") + "`"


def scale_id(levels: Sequence[Choice]) -> str:
    joined = "".join(c.label for c in levels)
    return "scale_" + hashlib.sha1(joined.encode("utf-8")).hexdigest()


def _with_sentinel(levels: Tuple[Choice, ...], label: str) -> Tuple[Choice, ...]:
    if any(c.label == label for c in levels):
        return levels
    return levels + (Choice(id=label, label=label),)


def column_levels(question: Question, column: Column,
                  options: ExportOptions) -> Tuple[Tuple[Choice, ...], bool]:
    """
    Level set and ordering for a factor column.

    Rank columns rank 1..N over the question's choices. Group columns list
    the question's groups plus a "Not grouped" level. Everything else uses
    the question's choices. Non-empty level sets always end with a
    "No response" level.

    Returns:
        (levels, ordered); levels is empty when there is nothing to declare
    """
    if column.kind is ColumnKind.RANK:
        levels = tuple(
            Choice(id=str(i), label=str(i)) for i in range(1, len(question.choices) + 1)
        )
        ordered = True
    elif column.kind is ColumnKind.GROUP:
        levels = tuple(Choice(id=g, label=g) for g in question.groups)
        if levels:
            levels = _with_sentinel(levels, options.not_grouped_label)
        ordered = False
    else:
        levels = tuple(question.choices)
        ordered = question.ordered_choices

    if levels:
        levels = _with_sentinel(levels, options.no_response_label)
    return levels, ordered


def column_type(question: Question, column: Column, scales: Scales,
                options: ExportOptions) -> Optional[str]:
    """
    readr column spec for one column, registering its scale in scales.

    Returns None for columns that get no clause (free text).
    """
    keyword = import_type_for(column.kind)
    if keyword is None:
        return None
    if keyword != "col_factor":
        return f"{keyword}()"

    levels, ordered = column_levels(question, column, options)
    if not levels:
        return "col_factor()"

    name = scale_id(levels)
    scales.setdefault(name, levels)
    if ordered:
        return f"col_factor(levels = {name}, ordered = TRUE)"
    return f"col_factor(levels = {name})"


def _scale_declarations(scales: Scales) -> List[str]:
    lines = []
    for name in sorted(scales):
        values = ", ".join(r_string(c.var_name or c.label) for c in scales[name])
        lines.append(f"{name} <- c({values})")
    return lines


def generate_r_script(survey: Survey, csv_path: str,
                      options: Optional[ExportOptions] = None) -> str:
    """
    Build the R import script for survey's CSV table.

    Args:
        survey: Finalized survey (responses not needed)
        csv_path: Path the script should read the table from
        options: Export options (sentinel labels, loader library)

    Returns:
        Script text
    """
    options = options or ExportOptions()
    scales: Scales = {}

    clauses = [f"{name} = {spec}" for name, spec in FIXED_COLUMN_TYPES]
    for question in survey.ordered_questions():
        for column in question.column_specs():
            spec = column_type(question, column, scales, options)
            if spec is not None:
                clauses.append(f"{r_name(column.name)} = {spec}")

    lines = [
        f"# Generated by qtab {__version__}",
        f"library({options.r_library})",
        "",
        f"input_path <- {r_string(csv_path)}",
    ]
    lines.extend(_scale_declarations(scales))
    lines.append("")
    lines.append('message(sprintf("Reading %s...", input_path))')
    lines.append("data <- read_csv(input_path, col_types = cols(")
    lines.append(",\n".join(f"  {c}" for c in clauses))
    lines.append("))")
    lines.append("")
    lines.append("rm(input_path)")
    lines.extend(f"rm({name})" for name in sorted(scales))

    return "\n".join(lines) + "\n"


def write_r_script(survey: Survey, sink: IO[str], csv_path: str,
                   options: Optional[ExportOptions] = None) -> None:
    """
    Write the R import script to sink.

    Raises:
        PreconditionError: If sink is None or closed; nothing is written
        StreamIOError: If writing or flushing fails
    """
    check_sink(sink, "sink")
    script = generate_r_script(survey, csv_path, options)
    try:
        sink.write(script)
        sink.flush()
    except OSError as e:
        raise StreamIOError(f"Could not write R script: {e}") from e


__all__ = [
    "generate_r_script",
    "write_r_script",
    "column_type",
    "column_levels",
    "scale_id",
    "r_name",
    "r_string",
]
