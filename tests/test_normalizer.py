import json

import pytest

from ai_normalize import AIFormatError, fragment_from_wire, normalize_response, strip_code_fence
from ai_prompts import PLACEHOLDER_NAME
from models import CVData, EducationEntry, ExperienceEntry, SectionType, TailoredCVUpdate

STRUCTURED = [kind for kind in SectionType if kind != SectionType.SUMMARY]


def test_strip_code_fence():
    assert strip_code_fence('```json\n["a"]\n```') == '["a"]'
    assert strip_code_fence('```\n{"x": 1}\n```') == '{"x": 1}'
    assert strip_code_fence('  ["a"]  ') == '["a"]'


def test_summary_is_returned_as_text():
    assert normalize_response("summary", "  A seasoned engineer.  ") == "A seasoned engineer."


@pytest.mark.parametrize("kind", STRUCTURED)
def test_non_json_is_rejected_with_raw_prefix(kind):
    raw = "Sure! Here is what you asked for: " + "x" * 200
    with pytest.raises(AIFormatError) as exc:
        normalize_response(kind, raw)
    assert exc.value.raw_prefix == raw[:100]
    assert raw[:100] in str(exc.value)


def test_list_kinds_accept_fenced_string_arrays():
    out = normalize_response("skill_suggestions", '```json\n["Docker", "Kubernetes", "Terraform"]\n```')
    assert out == ["Docker", "Kubernetes", "Terraform"]


def test_list_kinds_reject_wrong_shapes():
    with pytest.raises(AIFormatError):
        normalize_response("experience_responsibilities", '{"bullets": ["a"]}')
    with pytest.raises(AIFormatError):
        normalize_response("education_details", '[1, {"a": 2}]')


def test_new_experience_entry_gets_fresh_id():
    raw = json.dumps({
        "id": "model-id",
        "jobTitle": "Engineer",
        "company": "Acme",
        "location": "Berlin",
        "startDate": "Jan 2020",
        "endDate": "Present",
        "responsibilities": ["Built things."],
    })
    entry = normalize_response("new_experience_entry", raw)
    assert isinstance(entry, ExperienceEntry)
    assert entry.id and entry.id != "model-id"
    assert entry.job_title == "Engineer"
    assert entry.responsibilities == ["Built things."]


def test_new_education_entry_gets_fresh_id():
    raw = json.dumps({"id": "x", "degree": "BSc", "institution": "Uni", "graduationDate": "May 2020", "details": []})
    entry = normalize_response("new_education_entry", raw)
    assert isinstance(entry, EducationEntry)
    assert entry.id != "x"
    assert entry.graduation_date == "May 2020"


def test_new_entry_must_be_an_object():
    with pytest.raises(AIFormatError):
        normalize_response("new_experience_entry", '["not", "an", "object"]')


def _initial_cv(personal_info):
    return json.dumps({
        "personalInfo": personal_info,
        "summary": "Summary.",
        "experience": [{"id": "dup", "jobTitle": "Dev", "responsibilities": ["a"]}],
        "education": [{"id": "dup", "degree": "BSc"}],
        "skills": [{"category": "Lang", "skills": ["Go"]}],
    })


def test_initial_cv_from_title_uses_input_when_title_missing():
    cv = normalize_response("initial_cv_from_title", _initial_cv({"email": "a@b.c"}), "Backend Engineer")
    assert isinstance(cv, CVData)
    assert cv.personal_info.title == "Backend Engineer"
    assert cv.personal_info.email == "a@b.c"


def test_initial_cv_from_jd_title_fallback():
    cv = normalize_response("initial_cv_from_job_description", _initial_cv({}), "long JD text")
    assert cv.personal_info.title == "Job Title (from JD)"


def test_initial_cv_always_uses_placeholder_name_and_default_flags():
    info = {"name": "Jane Model", "title": "SRE", "showPhone": "yes", "showAddress": True}
    cv = normalize_response("initial_cv_from_title", _initial_cv(info), "SRE")
    assert cv.personal_info.name == PLACEHOLDER_NAME
    assert cv.personal_info.title == "SRE"
    assert cv.personal_info.show_phone is True  # non-bool ignored
    assert cv.personal_info.show_address is True
    assert cv.personal_info.show_portrait is False


def test_initial_cv_stamps_unique_fresh_ids():
    cv = normalize_response("initial_cv_from_title", _initial_cv({}), "Dev")
    ids = [cv.experience[0].id, cv.education[0].id, cv.skills[0].id]
    assert "dup" not in ids
    assert len(set(ids)) == 3


def test_initial_cv_rejects_non_list_sections():
    raw = json.dumps({"personalInfo": {}, "experience": "none"})
    with pytest.raises(AIFormatError):
        normalize_response("initial_cv_from_title", raw, "Dev")


def test_tailoring_keeps_echoed_skill_ids_and_fills_missing():
    raw = json.dumps({
        "updatedSummary": "New summary.",
        "updatedSkills": [{"id": "s1", "category": "Cloud", "skills": ["AWS"]}, {"category": "New", "skills": ["Go"]}],
        "updatedExperience": [{"id": "e1", "responsibilities": ["Did X."], "updatedJobTitle": "Senior Dev"}],
        "suggestedNewExperienceEntries": [],
    })
    update = normalize_response("tailor_cv_to_job_description", raw)
    assert isinstance(update, TailoredCVUpdate)
    assert update.updated_skills[0].id == "s1"
    assert update.updated_skills[1].id
    assert update.updated_experience[0].updated_job_title == "Senior Dev"


def test_tailoring_requires_summary_and_skills():
    with pytest.raises(AIFormatError):
        normalize_response("tailor_cv_to_job_description", json.dumps({"updatedExperience": []}))
    with pytest.raises(AIFormatError):
        normalize_response(
            "tailor_cv_to_job_description", json.dumps({"updatedSummary": None, "updatedSkills": []})
        )


def test_tailoring_accepts_null_optional_lists():
    raw = json.dumps({
        "updatedSummary": "S",
        "updatedSkills": [],
        "updatedExperience": None,
        "suggestedNewExperienceEntries": None,
    })
    update = normalize_response("tailor_cv_to_job_description", raw)
    assert update.updated_experience == []
    assert update.suggested_new_experience_entries == []


def test_tailoring_stringifies_numeric_skill_ids():
    raw = json.dumps({
        "updatedSummary": "S",
        "updatedSkills": [{"id": 3, "category": "Cloud", "skills": ["AWS"]}, {"id": None, "skills": []}],
    })
    update = normalize_response("tailor_cv_to_job_description", raw)
    assert update.updated_skills[0].id == "3"
    assert update.updated_skills[1].id


def test_new_experience_entry_accepts_null_fields():
    raw = json.dumps({
        "jobTitle": "Dev",
        "company": "Acme",
        "location": None,
        "startDate": "2021",
        "endDate": None,
        "responsibilities": None,
    })
    entry = normalize_response("new_experience_entry", raw)
    assert entry.job_title == "Dev"
    assert entry.end_date == ""
    assert entry.location == ""
    assert entry.responsibilities == []


def test_initial_cv_accepts_null_entry_fields():
    raw = json.dumps({
        "personalInfo": {"title": "Dev"},
        "summary": "Summary.",
        "experience": [{"jobTitle": "Dev", "endDate": None, "responsibilities": ["a"]}],
        "education": [{"degree": "BSc", "graduationDate": None}],
        "skills": None,
    })
    cv = normalize_response("initial_cv_from_title", raw, "Dev")
    assert cv.experience[0].end_date == ""
    assert cv.experience[0].id
    assert cv.education[0].graduation_date == ""
    assert cv.skills == []


def test_fragment_from_wire_rebuilds_models():
    entry = ExperienceEntry(job_title="Dev")
    back = fragment_from_wire("new_experience_entry", entry.to_wire())
    assert back == entry
    assert fragment_from_wire("skill_suggestions", ["a", "b"]) == ["a", "b"]
    assert fragment_from_wire("summary", "text") == "text"
    with pytest.raises(AIFormatError):
        fragment_from_wire("summary", ["not", "text"])
