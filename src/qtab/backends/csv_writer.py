"""
CSV table writer.

One header row, then one row per response:

    id, finished, progress, duration, <question columns in question order>

Each question contributes exactly its columns() and fills them via
render(), so every row has the header's width even when a response skipped
a question. Quoting is left to the csv module; free-text answers with
commas, quotes or newlines round-trip through any CSV reader.
"""
import csv
from typing import IO, List, Optional

from qtab.config import ExportOptions
from qtab.errors import PreconditionError, StreamIOError
from qtab.model import Survey
from qtab.response import Response


def check_sink(sink: Optional[IO[str]], name: str) -> None:
    """Raise PreconditionError unless sink is an open stream."""
    if sink is None:
        raise PreconditionError(f"{name} cannot be None")
    if getattr(sink, "closed", False):
        raise PreconditionError(f"{name} is closed")


def csv_header(survey: Survey) -> List[str]:
    return survey.columns()


def response_row(survey: Survey, response: Response) -> List[str]:
    row = [
        response.id,
        "TRUE" if response.finished else "FALSE",
        str(response.progress),
        str(response.duration),
    ]
    for question in survey.ordered_questions():
        row.extend(question.render(response))
    return row


def write_csv(survey: Survey, sink: IO[str], options: Optional[ExportOptions] = None) -> None:
    """
    Write survey responses as CSV.

    Args:
        survey: Parsed survey with responses attached
        sink: Open text stream (open files with newline="")
        options: Export options (line terminator)

    Raises:
        PreconditionError: If sink is None or closed; nothing is written
        StreamIOError: If writing or flushing fails
    """
    check_sink(sink, "sink")
    options = options or ExportOptions()

    writer = csv.writer(sink, lineterminator=options.csv_line_terminator)
    try:
        writer.writerow(csv_header(survey))
        for response in survey.responses:
            writer.writerow(response_row(survey, response))
        sink.flush()
    except OSError as e:
        raise StreamIOError(f"Could not write CSV: {e}") from e


__all__ = ["write_csv", "csv_header", "response_row", "check_sink"]
