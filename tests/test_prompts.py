import json

import pytest

from ai_prompts import (
    PLACEHOLDER_NAME,
    PROMPT_BUILDERS,
    PromptError,
    build_prompt,
    looks_senior,
    relevant_cv_parts,
)
from models import GenerationContext, PersonalInfo, SectionType


def test_every_section_type_has_a_builder():
    assert set(PROMPT_BUILDERS) == set(SectionType)


def test_only_summary_is_free_text():
    for kind in SectionType:
        _, expects_json = build_prompt(kind, "x")
        assert expects_json is (kind != SectionType.SUMMARY)


def test_unknown_section_type_is_rejected():
    with pytest.raises(PromptError) as exc:
        build_prompt("cover_letter", "x")
    assert "cover_letter" in str(exc.value)


def test_missing_user_input_is_rejected():
    with pytest.raises(PromptError):
        build_prompt("summary", None)


def test_empty_user_input_is_allowed():
    prompt, _ = build_prompt("summary", "")
    assert "summary" in prompt.lower()


def test_invalid_context_is_a_prompt_error():
    with pytest.raises(PromptError):
        build_prompt("summary", "x", {"applyDetailedExperienceUpdates": {"not": "a bool"}})


def test_summary_mentions_existing_roles():
    ctx = {"existingCV": {"experience": [{"jobTitle": "SRE", "company": "Acme"}]}}
    prompt, _ = build_prompt("summary", "cloud person", ctx)
    assert '"cloud person"' in prompt
    assert "SRE at Acme" in prompt


def test_context_fields_are_embedded():
    prompt, _ = build_prompt("experience_responsibilities", "kafka", {"jobTitle": "Data Engineer", "company": "Initech"})
    assert "Data Engineer" in prompt and "Initech" in prompt and '"kafka"' in prompt

    prompt, _ = build_prompt("education_details", "thesis", {"degree": "MSc", "institution": "ETH"})
    assert "MSc" in prompt and "ETH" in prompt

    prompt, _ = build_prompt("skill_suggestions", "cloud", {"skillCategory": "DevOps"})
    assert '"DevOps"' in prompt and '"cloud"' in prompt


def test_missing_context_falls_back_to_placeholders():
    prompt, _ = build_prompt("experience_responsibilities", "x")
    assert "Job Title: N/A" in prompt
    prompt, _ = build_prompt("skill_suggestions", "x")
    assert "General Skills" in prompt


def test_new_entries_forbid_ids():
    for kind in ("new_experience_entry", "new_education_entry"):
        prompt, _ = build_prompt(kind, "something")
        assert 'Do NOT include an "id" field' in prompt


def test_initial_cv_prompt_lists_every_personal_info_field():
    prompt, _ = build_prompt("initial_cv_from_title", "Backend Engineer")
    for key in PersonalInfo().to_wire():
        assert f'"{key}"' in prompt
    assert PLACEHOLDER_NAME in prompt
    assert "Backend Engineer" in prompt


@pytest.mark.parametrize(
    "text, senior",
    [
        ("Senior Backend Engineer wanted", True),
        ("Engineering Manager for platform team", True),
        ("8+ years of Python experience", True),
        ("3 years experience with React", False),
        ("Junior developer, graduate scheme", False),
    ],
)
def test_looks_senior(text, senior):
    assert looks_senior(text) is senior


def test_jd_prompt_asks_for_more_roles_when_senior():
    senior, _ = build_prompt("initial_cv_from_job_description", "Lead engineer, 10 years experience")
    junior, _ = build_prompt("initial_cv_from_job_description", "Graduate analyst")
    assert "2 or 3" in senior
    assert "1 or 2 distinct" in junior


def test_relevant_cv_parts_keeps_ids_and_drops_the_rest():
    cv = {
        "personalInfo": {"name": "Ann"},
        "summary": "s",
        "skills": [{"id": "s1", "category": "Lang", "skills": ["Go"]}],
        "experience": [{"id": "e1", "jobTitle": "Dev", "company": "X", "location": "Y", "responsibilities": ["a"]}],
        "education": [{"id": "d1"}],
    }
    parts = relevant_cv_parts(cv)
    assert set(parts) == {"summary", "skills", "experience"}
    assert parts["experience"] == [{"id": "e1", "jobTitle": "Dev", "company": "X", "responsibilities": ["a"]}]
    assert parts["skills"][0]["id"] == "s1"


def test_tailor_prompt_follows_detailed_flag():
    cv = {"experience": [{"id": "e1", "jobTitle": "Dev"}]}
    allowed, _ = build_prompt("tailor_cv_to_job_description", "JD", {"existingCV": cv})
    kept, _ = build_prompt(
        "tailor_cv_to_job_description", "JD", {"existingCV": cv, "applyDetailedExperienceUpdates": False}
    )
    assert "ALLOWS" in allowed
    assert "MUST be an empty array" in kept
    assert "MUST be the original job title" in kept
    assert json.dumps(relevant_cv_parts(cv)) in allowed


def test_job_description_context_fills_blank_input():
    ctx = {"existingCV": {}, "jobDescription": "Principal SRE, Kubernetes at scale"}
    tailor, _ = build_prompt("tailor_cv_to_job_description", "  ", ctx)
    initial, _ = build_prompt("initial_cv_from_job_description", "", ctx)
    assert "Principal SRE, Kubernetes at scale" in tailor
    assert "Principal SRE, Kubernetes at scale" in initial
    assert "senior-level role" in initial

    typed, _ = build_prompt("tailor_cv_to_job_description", "Typed JD", ctx)
    assert "Typed JD" in typed
    assert "Principal SRE" not in typed


def test_unset_detailed_flag_means_allowed():
    assert GenerationContext().detailed_updates is True
    assert GenerationContext(apply_detailed_experience_updates=False).detailed_updates is False
