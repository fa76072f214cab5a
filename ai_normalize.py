# ai_normalize.py
"""
Turn raw model text into the value each section type promises its caller.

Nothing half-parsed ever leaves this module: any JSON or shape problem on a
structured section type raises AIFormatError with the first 100 characters
of the raw output.
"""
import json
import logging
import re
from typing import Any, List, Union

from pydantic import TypeAdapter, ValidationError

from ai_prompts import PLACEHOLDER_NAME, parse_section_type
from models import (
    CVData,
    EducationEntry,
    ExperienceEntry,
    INITIAL_CV_SECTION_TYPES,
    LIST_SECTION_TYPES,
    PersonalInfo,
    SectionType,
    TailoredCVUpdate,
    new_id,
)

logger = logging.getLogger(__name__)

RAW_PREFIX_LEN = 100
JD_TITLE_FALLBACK = "Job Title (from JD)"

FENCE_RE = re.compile(r"^```(\w*)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)

_string_list = TypeAdapter(List[str])

Fragment = Union[str, List[str], ExperienceEntry, EducationEntry, CVData, TailoredCVUpdate]


class AIFormatError(ValueError):
    def __init__(self, section_type: str, raw: str):
        self.section_type = section_type
        self.raw_prefix = (raw or "")[:RAW_PREFIX_LEN]
        super().__init__(
            f"AI returned an invalid format for {section_type}. Raw output started with: {self.raw_prefix}"
        )


def strip_code_fence(text: str) -> str:
    text = (text or "").strip()
    m = FENCE_RE.match(text)
    if m and m.group(2):
        return m.group(2).strip()
    return text


def _loads(kind: SectionType, text: str, expected: type) -> Any:
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        logger.error(f"[AI] Failed to parse JSON for {kind.value}. Raw output snippet: {text[:RAW_PREFIX_LEN]!r}")
        raise AIFormatError(kind.value, text) from None
    if not isinstance(data, expected):
        logger.error(f"[AI] Expected {expected.__name__} for {kind.value}, got {type(data).__name__}")
        raise AIFormatError(kind.value, text)
    return data


def _str_or(value: Any, default: str) -> str:
    return value if isinstance(value, str) and value else default


def _bool_or(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _personal_info(kind: SectionType, user_input: str, raw_info: Any) -> PersonalInfo:
    info = raw_info if isinstance(raw_info, dict) else {}
    defaults = PersonalInfo()

    if kind == SectionType.INITIAL_CV_FROM_TITLE:
        title_fallback = user_input
    else:
        title_fallback = JD_TITLE_FALLBACK

    fields = {
        # the placeholder name is always used; the user fills it in
        "name": PLACEHOLDER_NAME,
        "title": _str_or(info.get("title"), title_fallback),
    }
    for field in ("phone", "email", "linkedin", "github", "portfolio", "address"):
        fields[field] = _str_or(info.get(field), "")
    fields["portrait_url"] = _str_or(info.get("portraitUrl"), "")

    for field in ("portrait", "phone", "email", "linkedin", "github", "portfolio", "address"):
        key = f"show_{field}"
        wire_key = "show" + field[0].upper() + field[1:]
        fields[key] = _bool_or(info.get(wire_key), getattr(defaults, key))

    return PersonalInfo(**fields)


def _stamped(items: Any, kind: SectionType, raw: str) -> List[dict]:
    """Copy each entry with a fresh id, discarding whatever id the model sent."""
    if items is None:
        return []
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        raise AIFormatError(kind.value, raw)
    return [{**item, "id": new_id()} for item in items]


def normalize_initial_cv(kind: SectionType, text: str, user_input: str) -> CVData:
    data = _loads(kind, text, dict)
    try:
        return CVData(
            personal_info=_personal_info(kind, user_input, data.get("personalInfo")),
            summary=_str_or(data.get("summary"), ""),
            experience=_stamped(data.get("experience"), kind, text),
            education=_stamped(data.get("education"), kind, text),
            skills=_stamped(data.get("skills"), kind, text),
        )
    except ValidationError:
        raise AIFormatError(kind.value, text) from None


def _skill_id(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return new_id()
    return str(value).strip() or new_id()


def normalize_tailoring(text: str) -> TailoredCVUpdate:
    kind = SectionType.TAILOR_CV_TO_JOB_DESCRIPTION
    data = _loads(kind, text, dict)

    skills = data.get("updatedSkills")
    if isinstance(skills, list):
        # ids the model echoed back are kept (as strings); only missing ones are generated
        data["updatedSkills"] = [
            {**s, "id": _skill_id(s.get("id"))} if isinstance(s, dict) else s
            for s in skills
        ]

    try:
        return TailoredCVUpdate.model_validate(data)
    except ValidationError:
        logger.error(f"[AI] Tailoring response did not match the expected shape: {text[:RAW_PREFIX_LEN]!r}")
        raise AIFormatError(kind.value, text) from None


def normalize_response(section_type, raw_text: str, user_input: str = "") -> Fragment:
    kind = parse_section_type(section_type)
    text = strip_code_fence(raw_text)

    if kind == SectionType.SUMMARY:
        return text

    if kind in LIST_SECTION_TYPES:
        data = _loads(kind, text, list)
        try:
            return _string_list.validate_python(data)
        except ValidationError:
            raise AIFormatError(kind.value, text) from None

    if kind in (SectionType.NEW_EXPERIENCE_ENTRY, SectionType.NEW_EDUCATION_ENTRY):
        data = _loads(kind, text, dict)
        model = ExperienceEntry if kind == SectionType.NEW_EXPERIENCE_ENTRY else EducationEntry
        try:
            return model.model_validate({**data, "id": new_id()})
        except ValidationError:
            raise AIFormatError(kind.value, text) from None

    if kind in INITIAL_CV_SECTION_TYPES:
        return normalize_initial_cv(kind, text, user_input)

    return normalize_tailoring(text)


_WIRE_MODELS = {
    SectionType.NEW_EXPERIENCE_ENTRY: ExperienceEntry,
    SectionType.NEW_EDUCATION_ENTRY: EducationEntry,
    SectionType.INITIAL_CV_FROM_TITLE: CVData,
    SectionType.INITIAL_CV_FROM_JOB_DESCRIPTION: CVData,
    SectionType.TAILOR_CV_TO_JOB_DESCRIPTION: TailoredCVUpdate,
}


def fragment_from_wire(section_type, data: Any) -> Fragment:
    """Rebuild the typed fragment from the JSON the generate endpoint sent back."""
    kind = parse_section_type(section_type)
    try:
        if kind == SectionType.SUMMARY:
            if not isinstance(data, str):
                raise AIFormatError(kind.value, json.dumps(data))
            return data
        if kind in LIST_SECTION_TYPES:
            return _string_list.validate_python(data)
        return _WIRE_MODELS[kind].model_validate(data)
    except ValidationError:
        raise AIFormatError(kind.value, json.dumps(data)) from None
