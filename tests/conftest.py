"""
Shared survey definitions and response exports for the qtab tests.

The scenario survey has two questions:
    Q1 (QID1)  single choice, 3 choices
    Q4 (QID4)  multi-select, 4 choices, choices 2 and 4 with text boxes

and three responses, the last one unfinished and without any Q4 answer.
"""
import json
from typing import Any, Dict, List, Optional

import pytest

from qtab.qsf_parser import parse_qsf_string
from qtab.xml_reader import read_responses_string


def choices(*labels: str, text_on=()) -> Dict[str, Dict[str, Any]]:
    """Choices object keyed "1".."N"; text_on lists 1-based keys with a text box."""
    out = {}
    for i, label in enumerate(labels, start=1):
        entry: Dict[str, Any] = {"Display": label}
        if i in text_on:
            entry["TextEntry"] = "true"
        out[str(i)] = entry
    return out


def sq(qid: str, tag: str, qtype: str, selector: str = "", **payload: Any) -> Dict[str, Any]:
    """One SQ element."""
    body = {
        "QuestionID": qid,
        "DataExportTag": tag,
        "QuestionType": qtype,
        "Selector": selector,
        "QuestionText": f"Question {tag}",
    }
    body.update(payload)
    return {"Element": "SQ", "PrimaryAttribute": qid, "Payload": body}


def block(block_id: str, *question_ids: str, type: str = "Standard") -> Dict[str, Any]:
    return {
        "ID": block_id,
        "Type": type,
        "Description": block_id,
        "BlockElements": [{"Type": "Question", "QuestionID": q} for q in question_ids],
    }


def make_qsf(
    blocks: List[Dict[str, Any]],
    questions: List[Dict[str, Any]],
    flow: Optional[List[Dict[str, Any]]] = None,
    count: Optional[int] = None,
    name: str = "Test Survey",
) -> Dict[str, Any]:
    """
    Assemble a definition document.

    Without an explicit flow, every non-trash block is visited in order.
    """
    if flow is None:
        flow = [{"Type": "Block", "ID": b["ID"]} for b in blocks if b["Type"] != "Trash"]
    elements: List[Dict[str, Any]] = [
        {"Element": "BL", "Payload": blocks},
        {"Element": "FL", "Payload": {"Type": "Root", "Flow": flow}},
    ]
    if count is not None:
        elements.append({"Element": "QC", "SecondaryAttribute": str(count)})
    elements.extend(questions)
    return {
        "SurveyEntry": {
            "SurveyName": name,
            "SurveyDescription": "",
            "SurveyStatus": "Active",
            "SurveyCreationDate": "2018-04-12 09:31:07",
            "SurveyStartDate": "0000-00-00 00:00:00",
            "LastModified": "2018-04-30 16:45:12",
        },
        "SurveyElements": elements,
    }


def response_xml(*responses: Dict[str, str]) -> str:
    """Responses document; each dict maps element tag to text, in order."""
    parts = ["<Responses>"]
    for r in responses:
        parts.append("  <Response>")
        for tag, text in r.items():
            parts.append(f"    <{tag}>{text}</{tag}>")
        parts.append("  </Response>")
    parts.append("</Responses>")
    return "\n".join(parts)


@pytest.fixture
def scenario_qsf() -> Dict[str, Any]:
    return make_qsf(
        blocks=[block("BL_1", "QID1", "QID4")],
        questions=[
            sq("QID1", "Q1", "MC", "SAVR",
               Choices=choices("Yes", "No", "Maybe"), ChoiceOrder=["1", "2", "3"]),
            sq("QID4", "Q4", "MC", "MAVR",
               Choices=choices("Car", "Other", "Bus", "Else", text_on=(2, 4)),
               ChoiceOrder=[1, 2, 3, 4]),
        ],
        count=2,
    )


@pytest.fixture
def scenario_qsf_text(scenario_qsf) -> str:
    return json.dumps(scenario_qsf)


@pytest.fixture
def scenario_xml() -> str:
    return response_xml(
        {
            "_recordId": "R_1", "progress": "100", "duration": "60", "finished": "1",
            "recordedDate": "2018-05-01 10:12:44",
            "QID1": "1", "QID4_1": "1", "QID4_2": "1", "QID4_2_TEXT": "Train, then walk",
        },
        {
            "_recordId": "R_2", "progress": "100", "duration": "45", "finished": "1",
            "recordedDate": "2018-05-01 11:03:01",
            "QID1": "3", "QID4_3": "1", "QID4_4": "1", "QID4_4_TEXT": "Scooter",
        },
        {
            "_recordId": "R_3", "progress": "20", "duration": "10", "finished": "0",
            "recordedDate": "2018-05-02 08:15:31",
            "QID1": "2",
        },
    )


@pytest.fixture
def scenario_survey(scenario_qsf_text, scenario_xml):
    """Parsed scenario survey with its three responses attached."""
    survey = parse_qsf_string(scenario_qsf_text)
    survey.responses = read_responses_string(scenario_xml)
    return survey
