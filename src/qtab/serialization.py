"""
Codebook serialization for qtab objects (Survey, Question, Choice).

Provides JSON/YAML round-trip of the survey structure via an intermediate
dict representation. Responses are data, not structure, and are not part
of the codebook.

Question dicts also list their exported columns so the codebook documents
the table; that field is derived and ignored on load.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict

import yaml

from qtab.model import Choice, Survey
from qtab.questions import (
    QUESTION_CLASSES,
    DynamicChoices,
    EmbeddedDataQuestion,
    Question,
    QuestionType,
)


def choice_to_dict(c: Choice) -> Dict[str, Any]:
    return {
        "id": c.id,
        "label": c.label,
        "var_name": c.var_name,
        "has_text": c.has_text,
        "export_tag": c.export_tag,
    }


def choice_from_dict(d: Dict[str, Any]) -> Choice:
    return Choice(
        id=str(d["id"]),
        label=d.get("label", ""),
        var_name=d.get("var_name", ""),
        has_text=bool(d.get("has_text", False)),
        export_tag=d.get("export_tag"),
    )


def dynamic_to_dict(dyn: DynamicChoices | None) -> Dict[str, Any] | None:
    if dyn is None:
        return None
    return {"source": dyn.source, "kind": dyn.kind}


def dynamic_from_dict(d: Dict[str, Any] | None) -> DynamicChoices | None:
    if d is None:
        return None
    return DynamicChoices(source=d["source"], kind=d["kind"])


def question_to_dict(q: Question) -> Dict[str, Any]:
    d = {
        "type": q.question_type.value,
        "id": q.id,
        "export_tag": q.export_tag,
        "text": q.text,
        "selector": q.selector,
        "sub_selector": q.sub_selector,
        "choices": [choice_to_dict(c) for c in q.choices],
        "sub_questions": [choice_to_dict(c) for c in q.sub_questions],
        "groups": list(q.groups),
        "dynamic_choices": dynamic_to_dict(q.dynamic_choices),
        "ordered_choices": q.ordered_choices,
        "columns": [{"name": c.name, "kind": c.kind.value} for c in q.column_specs()],
    }
    if isinstance(q, EmbeddedDataQuestion):
        d["variable_type"] = q.variable_type
    return d


def question_from_dict(d: Dict[str, Any]) -> Question:
    try:
        cls = QUESTION_CLASSES[QuestionType(d.get("type"))]
    except ValueError:
        raise TypeError(f"Unsupported question dict type: {d.get('type')}")

    kwargs: Dict[str, Any] = dict(
        id=d["id"],
        export_tag=d.get("export_tag", ""),
        text=d.get("text", ""),
        selector=d.get("selector", ""),
        sub_selector=d.get("sub_selector", ""),
        choices=tuple(choice_from_dict(c) for c in d.get("choices", [])),
        sub_questions=tuple(choice_from_dict(c) for c in d.get("sub_questions", [])),
        groups=tuple(d.get("groups", [])),
        dynamic_choices=dynamic_from_dict(d.get("dynamic_choices")),
        ordered_choices=bool(d.get("ordered_choices", False)),
    )
    if cls is EmbeddedDataQuestion:
        kwargs["variable_type"] = d.get("variable_type", "")
    return cls(**kwargs)


def _time_to_str(t: datetime | None) -> str | None:
    return t.isoformat(sep=" ") if t is not None else None


def _time_from_str(s: str | None) -> datetime | None:
    return datetime.fromisoformat(s) if s else None


def survey_to_dict(s: Survey) -> Dict[str, Any]:
    return {
        "title": s.title,
        "description": s.description,
        "status": s.status,
        "created_on": _time_to_str(s.created_on),
        "launched_on": _time_to_str(s.launched_on),
        "modified_on": _time_to_str(s.modified_on),
        "question_order": list(s.question_order),
        "questions": [question_to_dict(q) for q in s.questions.values()],
    }


def survey_from_dict(d: Dict[str, Any]) -> Survey:
    s = Survey(
        title=d.get("title", ""),
        description=d.get("description", ""),
        status=d.get("status", ""),
        created_on=_time_from_str(d.get("created_on")),
        launched_on=_time_from_str(d.get("launched_on")),
        modified_on=_time_from_str(d.get("modified_on")),
    )
    questions = [question_from_dict(q) for q in d.get("questions", [])]
    s.questions = {q.id: q for q in questions}
    s.question_order = [qid for qid in d.get("question_order", []) if qid in s.questions]
    return s


def survey_to_json(s: Survey) -> str:
    return json.dumps(survey_to_dict(s), sort_keys=True, indent=2)


def survey_from_json(s: str) -> Survey:
    d = json.loads(s)
    return survey_from_dict(d)


def survey_to_yaml(s: Survey) -> str:
    return yaml.safe_dump(survey_to_dict(s), sort_keys=False, allow_unicode=True)


def survey_from_yaml(s: str) -> Survey:
    d = yaml.safe_load(s)
    return survey_from_dict(d)
