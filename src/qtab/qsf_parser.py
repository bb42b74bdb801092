"""
QSF Parser (survey definition → Survey).

A QSF file is a JSON object:

    {
        "SurveyEntry":    { "SurveyName": ..., "SurveyCreationDate": ... },
        "SurveyElements": [ { "Element": "BL", "Payload": ... }, ... ]
    }

Every SurveyElements entry carries an "Element" tag, and the shape of its
Payload depends on that tag:

    BL  Blocks     list OR keyed object of block descriptors
    FL  Flow       {"Flow": [...]} of block references, randomizers,
                   branches and embedded-data nodes
    QC  Count      question count in SecondaryAttribute (advisory)
    SQ  Question   one question; NPS questions store Choices as a list

Decoding probes the tag, then hands the entry to a decoder for that shape.
Each decoder returns its own element type (BlocksElement, FlowElement, ...),
so no code ever sees a half-filled "any element" record.

After decoding, trashed questions are dropped, export order is computed from
the flow, embedded-data fields are appended, and dynamic choices are copied
from their source questions.
"""
import json
import logging
import re
import warnings
from dataclasses import dataclass, replace
from datetime import datetime
from typing import IO, Any, Callable, Dict, FrozenSet, Iterator, List, Mapping, Optional, Tuple, Union

from qtab.errors import (
    FieldConversionWarning,
    MalformedElementError,
    MissingMetadataError,
    QSFParseError,
    StreamIOError,
)
from qtab.model import Choice, Survey
from qtab.questions import (
    DynamicChoices,
    EmbeddedDataQuestion,
    Question,
    QuestionType,
    question_class_for,
    question_type_for,
)


logger = logging.getLogger(__name__)

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
# Written for surveys that were never launched.
_ZERO_TIMESTAMP = "0000-00-00 00:00:00"

ORDINAL_SELECTORS = frozenset({"Likert", "Bipolar"})

_LOCATOR_RE = re.compile(r"^q://(QID\d+)/")


# =========================================================================
# ELEMENT VARIANTS
# =========================================================================


@dataclass(frozen=True)
class BlockDescriptor:
    """One block: its ID, type ("Standard", "Default", "Trash") and question IDs."""

    id: str
    type: str = ""
    description: str = ""
    question_ids: Tuple[str, ...] = ()

    @property
    def is_trash(self) -> bool:
        return self.type == "Trash"


@dataclass(frozen=True)
class BlocksElement:
    blocks: Tuple[BlockDescriptor, ...]


@dataclass(frozen=True)
class EmbeddedField:
    field: str
    variable_type: str = ""


@dataclass(frozen=True)
class FlowNode:
    """
    One survey flow node.

    Properties:
        type: Node type ("Block", "Standard", "BlockRandomizer", "Branch", "EmbeddedData", ...)
        block_id: Referenced block, for block nodes
        children: Nested flow (randomizers, branches, groups)
        embedded_data: Fields declared by an EmbeddedData node
    """

    type: str = ""
    block_id: Optional[str] = None
    children: Tuple["FlowNode", ...] = ()
    embedded_data: Tuple[EmbeddedField, ...] = ()


@dataclass(frozen=True)
class FlowElement:
    nodes: Tuple[FlowNode, ...]


@dataclass(frozen=True)
class QuestionElement:
    question: Question


@dataclass(frozen=True)
class CountElement:
    expected: Optional[int]


@dataclass(frozen=True)
class UnknownElement:
    tag: str


SurveyElement = Union[BlocksElement, FlowElement, QuestionElement, CountElement, UnknownElement]


# =========================================================================
# SCALAR HELPERS
# =========================================================================


def _int_key(value: Any, what: str) -> int:
    """Choice keys arrive as 3 or "3"; both mean choice 3."""
    if isinstance(value, bool):
        raise MalformedElementError(f"{what} key must be numeric, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and re.fullmatch(r"\s*-?\d+\s*", value):
        return int(value)
    raise MalformedElementError(f"{what} key must be numeric, got {value!r}")


def _text_flag(value: Any) -> bool:
    if value is None or value == "":
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        low = value.strip().lower()
        if low in ("1", "t", "true"):
            return True
        if low in ("0", "f", "false"):
            return False
    raise MalformedElementError(f"TextEntry must be a boolean, got {value!r}")


def _keyed_strings(value: Any, what: str) -> Dict[int, str]:
    if not isinstance(value, dict):
        return {}
    return {_int_key(k, what): str(v) for k, v in value.items() if v is not None}


def _parse_timestamp(value: Any, field_name: str) -> Optional[datetime]:
    if not value or value == _ZERO_TIMESTAMP:
        return None
    try:
        return datetime.strptime(str(value), TIME_FORMAT)
    except ValueError:
        warnings.warn(
            f"Could not convert {field_name} '{value}' to a timestamp",
            FieldConversionWarning,
        )
        return None


def _require_dict(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise MalformedElementError(f"{what} must be an object, got {type(value).__name__}")
    return value


def _require_list(value: Any, what: str) -> List[Any]:
    if not isinstance(value, list):
        raise MalformedElementError(f"{what} must be a list, got {type(value).__name__}")
    return value


# =========================================================================
# CHOICES
# =========================================================================


def _choice_map(value: Any, what: str) -> Dict[int, Dict[str, Any]]:
    # Dynamic-choice questions carry an empty list here instead of an object.
    if not isinstance(value, dict):
        return {}
    return {
        _int_key(k, what): _require_dict(v, f"{what} entry {k}")
        for k, v in value.items()
    }


def _ordered_keys(order: Any, choice_map: Dict[int, Any], what: str) -> List[int]:
    if order is None:
        return sorted(choice_map)
    return [_int_key(k, what) for k in _require_list(order, what)]


def _ordered_choices(payload: Dict[str, Any], choices_are_questions: bool = False) -> Tuple[Choice, ...]:
    """
    Decode Choices in ChoiceOrder order.

    A defined name becomes the column suffix: ChoiceDataExportTags for
    matrix rows (choices_are_questions=True), VariableNaming for answer
    options, which also use it as their value label.
    """
    choice_map = _choice_map(payload.get("Choices"), "Choices")
    keys = _ordered_keys(payload.get("ChoiceOrder"), choice_map, "ChoiceOrder")

    naming: Dict[int, str] = {}
    if choices_are_questions:
        export_tags = _keyed_strings(payload.get("ChoiceDataExportTags"), "ChoiceDataExportTags")
    else:
        naming = _keyed_strings(payload.get("VariableNaming"), "VariableNaming")
        export_tags = naming

    ordered = []
    for key in keys:
        entry = choice_map.get(key, {})
        ordered.append(Choice(
            id=str(key),
            label=str(entry.get("Display") or ""),
            var_name=naming.get(key, ""),
            has_text=_text_flag(entry.get("TextEntry")),
            export_tag=export_tags.get(key) or None,
        ))
    return tuple(ordered)


def _ordered_answers(payload: Dict[str, Any]) -> Tuple[Choice, ...]:
    """Decode matrix scale points (Answers in AnswerOrder order), named by VariableNaming."""
    answer_map = _choice_map(payload.get("Answers"), "Answers")
    keys = _ordered_keys(payload.get("AnswerOrder"), answer_map, "AnswerOrder")
    naming = _keyed_strings(payload.get("VariableNaming"), "VariableNaming")

    return tuple(
        Choice(
            id=str(key),
            label=str(answer_map.get(key, {}).get("Display") or ""),
            var_name=naming.get(key, ""),
            has_text=_text_flag(answer_map.get(key, {}).get("TextEntry")),
            export_tag=naming.get(key) or None,
        )
        for key in keys
    )


def _dynamic_choices(value: Any) -> Optional[DynamicChoices]:
    if not isinstance(value, dict):
        return None
    locator = str(value.get("Locator") or "")
    m = _LOCATOR_RE.match(locator)
    kind = value.get("Type") or locator.rstrip("/").rsplit("/", 1)[-1]
    return DynamicChoices(source=m.group(1) if m else "", kind=str(kind))


# =========================================================================
# ELEMENT DECODERS
# =========================================================================


def _decode_blocks(raw: Dict[str, Any]) -> BlocksElement:
    payload = raw.get("Payload")
    # Older exports key blocks by position ("0", "1", ...) instead of listing them.
    if isinstance(payload, dict):
        descriptors = list(payload.values())
    elif isinstance(payload, list):
        descriptors = payload
    else:
        raise MalformedElementError("BL payload must be a list or an object")

    blocks = []
    for d in descriptors:
        d = _require_dict(d, "BL block")
        block_id = d.get("ID")
        if not isinstance(block_id, str):
            raise MalformedElementError(f"BL block has no ID: {d!r}")

        question_ids = []
        for member in _require_list(d.get("BlockElements") or [], f"BL {block_id} BlockElements"):
            member = _require_dict(member, f"BL {block_id} element")
            if member.get("Type") == "Question":
                qid = member.get("QuestionID")
                if not isinstance(qid, str):
                    raise MalformedElementError(f"BL {block_id} question entry has no QuestionID")
                question_ids.append(qid)

        blocks.append(BlockDescriptor(
            id=block_id,
            type=str(d.get("Type") or ""),
            description=str(d.get("Description") or ""),
            question_ids=tuple(question_ids),
        ))
    return BlocksElement(blocks=tuple(blocks))


def _decode_flow_node(raw: Any) -> FlowNode:
    d = _require_dict(raw, "FL node")

    children = ()
    if d.get("Flow") is not None:
        children = tuple(_decode_flow_node(n) for n in _require_list(d["Flow"], "FL node Flow"))

    embedded = []
    for e in _require_list(d.get("EmbeddedData") or [], "FL EmbeddedData"):
        e = _require_dict(e, "FL EmbeddedData field")
        name = e.get("Field")
        if not isinstance(name, str) or not name:
            raise MalformedElementError(f"FL EmbeddedData field has no name: {e!r}")
        embedded.append(EmbeddedField(field=name, variable_type=str(e.get("VariableType") or "")))

    block_id = d.get("ID")
    return FlowNode(
        type=str(d.get("Type") or ""),
        block_id=block_id if isinstance(block_id, str) and block_id else None,
        children=children,
        embedded_data=tuple(embedded),
    )


def _decode_flow(raw: Dict[str, Any]) -> FlowElement:
    payload = _require_dict(raw.get("Payload"), "FL payload")
    nodes = _require_list(payload.get("Flow"), "FL payload Flow")
    return FlowElement(nodes=tuple(_decode_flow_node(n) for n in nodes))


def _decode_count(raw: Dict[str, Any]) -> CountElement:
    value = raw.get("SecondaryAttribute")
    try:
        expected = int(value)
    except (TypeError, ValueError):
        warnings.warn(f"Could not convert question count '{value}' to int", FieldConversionWarning)
        expected = None
    return CountElement(expected=expected)


def _decode_question(raw: Dict[str, Any]) -> QuestionElement:
    payload = _require_dict(raw.get("Payload"), "SQ payload")
    qid = payload.get("QuestionID")
    qtype = payload.get("QuestionType")
    if not isinstance(qid, str) or not qid:
        raise MalformedElementError("SQ payload has no QuestionID")
    if not isinstance(qtype, str):
        raise MalformedElementError(f"SQ {qid} has no QuestionType")

    selector = str(payload.get("Selector") or "")
    sub_selector = str(payload.get("SubSelector") or "")
    common = dict(
        id=qid,
        export_tag=str(payload.get("DataExportTag") or ""),
        text=str(payload.get("QuestionText") or ""),
        selector=selector,
        sub_selector=sub_selector,
    )
    cls = question_class_for(qtype, selector)

    choices_raw = payload.get("Choices")
    if isinstance(choices_raw, list) and choices_raw and isinstance(choices_raw[0], dict):
        # Fixed 0-10 scales list their choices positionally. The values never
        # change, so only the identifying fields are kept.
        return QuestionElement(question=cls(**common))

    if question_type_for(qtype, selector) is QuestionType.MATRIX:
        sub_questions = _ordered_choices(payload, choices_are_questions=True)
        choices = _ordered_answers(payload)
    else:
        sub_questions = ()
        choices = _ordered_choices(payload)

    groups = payload.get("Groups") or []
    if not isinstance(groups, list):
        raise MalformedElementError(f"SQ {qid} Groups must be a list")

    question = cls(
        choices=choices,
        sub_questions=sub_questions,
        groups=tuple(str(g) for g in groups),
        dynamic_choices=_dynamic_choices(payload.get("DynamicChoices")),
        ordered_choices=selector in ORDINAL_SELECTORS,
        **common,
    )
    return QuestionElement(question=question)


_DECODERS: Dict[str, Callable[[Dict[str, Any]], SurveyElement]] = {
    "BL": _decode_blocks,
    "FL": _decode_flow,
    "QC": _decode_count,
    "SQ": _decode_question,
}


def decode_element(raw: Any) -> SurveyElement:
    """
    Decode one SurveyElements entry.

    Args:
        raw: Entry as loaded from JSON

    Returns:
        BlocksElement, FlowElement, CountElement, QuestionElement, or
        UnknownElement for tags qtab does not use

    Raises:
        MalformedElementError: If the payload does not fit its tag
    """
    d = _require_dict(raw, "Survey element")
    tag = d.get("Element")
    decoder = _DECODERS.get(tag) if isinstance(tag, str) else None
    if decoder is None:
        return UnknownElement(tag=str(tag or ""))
    return decoder(d)


# =========================================================================
# SURVEY ASSEMBLY
# =========================================================================


def _iter_flow(nodes: Tuple[FlowNode, ...]) -> Iterator[FlowNode]:
    """Flatten nested flow (randomizers, branches, groups) in document order."""
    for node in nodes:
        yield node
        if node.children:
            yield from _iter_flow(node.children)


def _log_name_clash(name: str) -> None:
    logger.warning("Embedded data field '%s' has the same name as a question; keeping the question", name)


def resolve_dynamic_choices(questions: Mapping[str, Question]) -> Dict[str, Question]:
    """
    Copy choices into questions that reuse another question's choices.

    A question whose DynamicChoices kind is DisplayedChoices or
    SelectedChoices receives its source's choices (and ordering) if it has
    none, and its source's matrix rows if it has none. Chains resolve
    regardless of question order. Other kinds, missing sources and cycles
    are logged and left as they are.

    Args:
        questions: Question ID → Question

    Returns:
        New mapping with resolved questions; the input is not modified
    """
    resolved: Dict[str, Question] = {}

    def resolve(qid: str, chain: FrozenSet[str]) -> Question:
        if qid in resolved:
            return resolved[qid]
        question = questions[qid]
        dyn = question.dynamic_choices

        if dyn is None:
            pass
        elif not dyn.resolvable:
            logger.warning("%s: dynamic choices of type '%s' are not supported", qid, dyn.kind)
        elif dyn.source not in questions:
            logger.warning("%s: dynamic choice source '%s' not found", qid, dyn.source)
        elif dyn.source in chain:
            logger.warning("%s: dynamic choices form a cycle through '%s'", qid, dyn.source)
        else:
            source = resolve(dyn.source, chain | {qid})
            changes: Dict[str, Any] = {}
            if not question.choices:
                changes["choices"] = source.choices
                changes["ordered_choices"] = source.ordered_choices
            if not question.sub_questions:
                changes["sub_questions"] = source.sub_questions
            if changes:
                question = replace(question, **changes)

        resolved[qid] = question
        return question

    for qid in questions:
        resolve(qid, frozenset())
    return resolved


def survey_from_qsf(data: Any) -> Survey:
    """
    Build a Survey from a decoded QSF document.

    Raises:
        MissingMetadataError: If SurveyEntry is missing
        QSFParseError: If SurveyElements is missing or an element is malformed
    """
    if not isinstance(data, dict):
        raise QSFParseError("Survey definition must be a JSON object")
    entry = data.get("SurveyEntry")
    if not isinstance(entry, dict):
        raise MissingMetadataError("Survey definition has no SurveyEntry object")
    elements = data.get("SurveyElements")
    if not isinstance(elements, list):
        raise QSFParseError("Survey definition has no SurveyElements list")

    blocks: Dict[str, BlockDescriptor] = {}
    block_order: List[str] = []
    questions: Dict[str, Question] = {}
    embedded_ids: List[str] = []
    expected_count: Optional[int] = None
    parsed_count = 0

    for index, raw in enumerate(elements):
        try:
            element = decode_element(raw)
        except MalformedElementError as e:
            raise MalformedElementError(f"Error parsing SurveyElements[{index}]: {e}") from e

        if isinstance(element, BlocksElement):
            for block in element.blocks:
                blocks[block.id] = block
        elif isinstance(element, FlowElement):
            for node in _iter_flow(element.nodes):
                if node.block_id and node.block_id not in block_order:
                    block_order.append(node.block_id)
                for f in node.embedded_data:
                    if f.field in questions:
                        if not isinstance(questions[f.field], EmbeddedDataQuestion):
                            _log_name_clash(f.field)
                        continue
                    questions[f.field] = EmbeddedDataQuestion(
                        id=f.field, export_tag=f.field, variable_type=f.variable_type,
                    )
                    embedded_ids.append(f.field)
        elif isinstance(element, QuestionElement):
            if isinstance(questions.get(element.question.id), EmbeddedDataQuestion):
                _log_name_clash(element.question.id)
            questions[element.question.id] = element.question
            parsed_count += 1
        elif isinstance(element, CountElement):
            expected_count = element.expected
        else:
            logger.debug("Ignoring survey element '%s'", element.tag)

    # A question replaces an embedded field of the same name.
    embedded_ids = [f for f in embedded_ids if isinstance(questions[f], EmbeddedDataQuestion)]

    # The platform's count includes trashed questions, so compare before emptying the trash.
    if expected_count is not None and expected_count != parsed_count:
        logger.warning("Expected %d questions but found %d", expected_count, parsed_count)

    embedded = set(embedded_ids)
    for block in blocks.values():
        if block.is_trash:
            for qid in block.question_ids:
                if qid not in embedded:
                    questions.pop(qid, None)

    question_order: List[str] = []
    for block_id in block_order:
        block = blocks.get(block_id)
        if block is None:
            logger.warning("Survey flow references undefined block '%s'", block_id)
            continue
        for qid in block.question_ids:
            if qid in question_order:
                continue
            if qid not in questions:
                logger.warning("Block '%s' lists question '%s' which was not found", block_id, qid)
                continue
            question_order.append(qid)
    question_order.extend([f for f in embedded_ids if f not in question_order])

    survey = Survey(
        title=str(entry.get("SurveyName") or ""),
        description=str(entry.get("SurveyDescription") or ""),
        status=str(entry.get("SurveyStatus") or ""),
        created_on=_parse_timestamp(entry.get("SurveyCreationDate"), "SurveyCreationDate"),
        launched_on=_parse_timestamp(entry.get("SurveyStartDate"), "SurveyStartDate"),
        modified_on=_parse_timestamp(entry.get("LastModified"), "LastModified"),
        question_order=question_order,
        questions=resolve_dynamic_choices(questions),
    )
    logger.info(
        "Parsed survey '%s': %d questions, %d embedded data fields",
        survey.title, len(question_order) - len(embedded_ids), len(embedded_ids),
    )
    return survey


def parse_qsf_string(content: str) -> Survey:
    """
    Parse QSF text into a Survey.

    Raises:
        QSFParseError: If the JSON is invalid or the document is malformed
    """
    try:
        data = json.loads(content.lstrip("\ufeff"))
    except json.JSONDecodeError as e:
        raise QSFParseError(f"Survey definition is not valid JSON: {e}") from e
    return survey_from_qsf(data)


def parse_qsf(stream: Union[IO[bytes], IO[str]]) -> Survey:
    """
    Parse a QSF document from an open stream.

    Args:
        stream: Binary or text stream positioned at the start of the document

    Returns:
        Survey with questions resolved and no responses

    Raises:
        StreamIOError: If reading fails
        QSFParseError: If the document is malformed
    """
    try:
        content = stream.read()
    except OSError as e:
        raise StreamIOError(f"Could not read survey definition: {e}") from e
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise QSFParseError(f"Survey definition is not UTF-8: {e}") from e
    return parse_qsf_string(content)


def parse_qsf_file(filepath: str) -> Survey:
    """
    Parse a QSF file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        QSFParseError: If the document is malformed
    """
    try:
        with open(filepath, "rb") as f:
            return parse_qsf(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"QSF file not found: {filepath}")


__all__ = [
    "BlockDescriptor",
    "BlocksElement",
    "FlowNode",
    "FlowElement",
    "EmbeddedField",
    "QuestionElement",
    "CountElement",
    "UnknownElement",
    "SurveyElement",
    "decode_element",
    "resolve_dynamic_choices",
    "survey_from_qsf",
    "parse_qsf",
    "parse_qsf_string",
    "parse_qsf_file",
]
