"""
XML response reader (response export → Responses).

Expected layout:

    <Responses>
        <Response>
            <_recordId>R_1dtWhiBDD96nfyk</_recordId>
            <progress>100</progress>
            <duration>122</duration>
            <finished>1</finished>
            <recordedDate>2018-05-01 10:12:44</recordedDate>
            <QID1>2</QID1>
            <QID4_3>1</QID4_3>
            ...
        </Response>
    </Responses>

The five fixed fields fill the Response attributes. Every other child is an
answer: its tag is the raw answer key, normalized on insertion.

Bad scalar values do not stop the read: they become zero values and raise
a FieldConversionWarning.
"""
import logging
import warnings
from datetime import datetime
from typing import IO, Callable, List, TypeVar, Union
from xml.etree.ElementTree import Element, ParseError

import defusedxml.ElementTree as ET
from defusedxml import DefusedXmlException

from qtab.errors import FieldConversionWarning, ResponseParseError, StreamIOError
from qtab.model import Survey
from qtab.response import Response


logger = logging.getLogger(__name__)

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

ID_FIELD = "_recordId"
PROGRESS_FIELD = "progress"
DURATION_FIELD = "duration"
FINISHED_FIELD = "finished"
RECORDED_FIELD = "recordedDate"
FIXED_FIELDS = frozenset({ID_FIELD, PROGRESS_FIELD, DURATION_FIELD, FINISHED_FIELD, RECORDED_FIELD})

T = TypeVar("T")


def _parse_bool(text: str) -> bool:
    low = text.strip().lower()
    if low in ("1", "t", "true"):
        return True
    if low in ("0", "f", "false"):
        return False
    raise ValueError(f"invalid boolean {text!r}")


def _parse_time(text: str) -> datetime:
    return datetime.strptime(text.strip(), TIME_FORMAT)


def _field(elem: Element, name: str, convert: Callable[[str], T], default: T) -> T:
    child = elem.find(name)
    if child is None:
        logger.debug("Response has no <%s> field", name)
        return default
    text = child.text or ""
    try:
        return convert(text)
    except ValueError as e:
        warnings.warn(
            f"Could not convert <{name}> value '{text}': {e}",
            FieldConversionWarning,
        )
        return default


def response_from_element(elem: Element) -> Response:
    """Build one Response from a <Response> element."""
    response = Response(
        id=_field(elem, ID_FIELD, str.strip, ""),
        progress=_field(elem, PROGRESS_FIELD, int, 0),
        duration=_field(elem, DURATION_FIELD, int, 0),
        finished=_field(elem, FINISHED_FIELD, _parse_bool, False),
        recorded_on=_field(elem, RECORDED_FIELD, _parse_time, None),
    )
    for child in elem:
        if child.tag in FIXED_FIELDS:
            continue
        response.add_answer(child.tag, child.text)
    return response


def read_responses_string(content: Union[str, bytes]) -> List[Response]:
    """
    Parse response XML into Responses, in document order.

    Raises:
        ResponseParseError: If the XML is invalid or the root is not <Responses>
        AnswerConflictError: If two answer keys of one response collide
    """
    try:
        root = ET.fromstring(content)
    except (ParseError, DefusedXmlException) as e:
        raise ResponseParseError(f"Could not parse response XML: {e}") from e

    if root.tag != "Responses":
        raise ResponseParseError(f"Expected <Responses> root element, found <{root.tag}>")

    responses = [response_from_element(e) for e in root.findall("Response")]
    logger.info("Read %d responses", len(responses))
    return responses


def read_responses(stream: Union[IO[bytes], IO[str]]) -> List[Response]:
    """
    Read Responses from an open stream.

    Raises:
        StreamIOError: If reading fails
        ResponseParseError: If the document is not a Responses export
    """
    try:
        content = stream.read()
    except OSError as e:
        raise StreamIOError(f"Could not read responses: {e}") from e
    return read_responses_string(content)


def attach_responses(survey: Survey, stream: Union[IO[bytes], IO[str]]) -> Survey:
    """Read responses from stream and attach them to survey (replacing any)."""
    survey.responses = read_responses(stream)
    return survey


def read_responses_file(filepath: str) -> List[Response]:
    try:
        with open(filepath, "rb") as f:
            return read_responses(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Response file not found: {filepath}")


__all__ = [
    "read_responses",
    "read_responses_string",
    "read_responses_file",
    "attach_responses",
    "response_from_element",
]
