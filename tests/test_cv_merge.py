import pytest

from cv_merge import MergeTargetError, apply_tailoring, merge_fragment, replace_list_field
from models import (
    AutofillTarget,
    CVData,
    EducationEntry,
    ExperienceDraft,
    ExperienceEntry,
    ExperienceUpdate,
    SkillEntry,
    TailoredCVUpdate,
)


@pytest.fixture
def cv():
    return CVData(
        summary="Old summary.",
        experience=[
            ExperienceEntry(id="e1", job_title="Developer", company="Acme", responsibilities=["Old 1"]),
            ExperienceEntry(id="e2", job_title="Intern", company="Initech", responsibilities=["Old 2"]),
        ],
        education=[EducationEntry(id="d1", degree="BSc", details=["Thesis"])],
        skills=[
            SkillEntry(id="s1", category="DevOps", skills=["Bash"]),
            SkillEntry(id="s2", category="Languages", skills=["Python"]),
        ],
    )


def _tailoring(**overrides):
    data = dict(
        updated_summary="Tailored summary.",
        updated_skills=[
            SkillEntry(id="s1", category="DevOps", skills=["Docker", "Kubernetes"]),
            SkillEntry(id="new_skill_cat_1", category="Cloud", skills=["AWS"]),
        ],
        updated_experience=[
            ExperienceUpdate(id="e1", responsibilities=["Shipped X."], updated_job_title="Senior Developer"),
            ExperienceUpdate(id="e2", responsibilities=["Helped Y."], updated_job_title="   "),
        ],
        suggested_new_experience_entries=[ExperienceDraft(job_title="Lead", company="Globex")],
    )
    data.update(overrides)
    return TailoredCVUpdate(**data)


def test_summary_replacement_leaves_input_untouched(cv):
    out = merge_fragment(cv, "summary", "New summary.")
    assert out.summary == "New summary."
    assert cv.summary == "Old summary."


def test_responsibilities_round_trip_at_position_1(cv):
    bullets = ["Led migration.", "Cut costs 20%."]
    target = AutofillTarget(section="experience", index=1, field="responsibilities")
    out = merge_fragment(cv, "experience_responsibilities", bullets, target)
    stored = CVData.model_validate(out.to_wire())
    assert stored.experience[1].responsibilities == bullets
    assert stored.experience[0].responsibilities == ["Old 1"]


def test_skill_suggestions_end_to_end_merge(cv):
    target = AutofillTarget(section="skills", index=0, field="skills")
    out = merge_fragment(cv, "skill_suggestions", ["Docker", "Kubernetes", "Terraform"], target)
    assert out.skills[0].category == "DevOps"
    assert out.skills[0].skills == ["Docker", "Kubernetes", "Terraform"]
    assert out.skills[1].skills == ["Python"]


def test_education_details_replacement(cv):
    target = AutofillTarget(section="education", index=0, field="details")
    out = merge_fragment(cv, "education_details", ["GPA 3.9"], target)
    assert out.education[0].details == ["GPA 3.9"]


def test_stale_target_is_dropped(cv):
    single = CVData(experience=[ExperienceEntry(id="e1", job_title="Dev", responsibilities=["a"])])
    target = AutofillTarget(section="experience", index=0, field="responsibilities")
    fragment = ["New bullet."]

    removed = single.model_copy(deep=True)
    removed.experience.pop(0)

    out = merge_fragment(removed, "experience_responsibilities", fragment, target)
    assert out == removed
    assert out.experience == []


@pytest.mark.parametrize("index", [None, -1, 5])
def test_out_of_range_index_is_a_no_op(cv, index):
    assert replace_list_field(cv, "experience", index, "responsibilities", ["x"]) == cv


def test_list_fragment_needs_matching_target(cv):
    with pytest.raises(MergeTargetError):
        merge_fragment(cv, "skill_suggestions", ["a"], None)
    with pytest.raises(MergeTargetError):
        merge_fragment(cv, "skill_suggestions", ["a"], AutofillTarget(section="experience", index=0))
    with pytest.raises(MergeTargetError):
        merge_fragment(cv, "education_details", ["a"], AutofillTarget(section="education", index=0, field="degree"))


def test_new_entries_are_appended_with_unique_ids(cv):
    entry = ExperienceEntry(id="e1", job_title="Clash")
    out = merge_fragment(cv, "new_experience_entry", entry, AutofillTarget(section="experience", action="add"))
    assert [e.job_title for e in out.experience] == ["Developer", "Intern", "Clash"]
    assert out.experience[2].id not in {"e1", "e2"}
    assert len(out.all_ids()) == 6

    edu = EducationEntry(degree="MSc")
    out = merge_fragment(out, "new_education_entry", edu)
    assert out.education[-1].degree == "MSc"


def test_new_entry_rejects_update_action(cv):
    with pytest.raises(MergeTargetError):
        merge_fragment(cv, "new_experience_entry", ExperienceEntry(), AutofillTarget(section="experience", action="update"))


def test_initial_cv_replaces_document(cv):
    fresh = CVData(summary="Fresh")
    out = merge_fragment(cv, "initial_cv_from_title", fresh)
    assert out == fresh
    assert out is not fresh


def test_wrong_fragment_type_is_rejected(cv):
    with pytest.raises(MergeTargetError):
        merge_fragment(cv, "summary", ["not", "text"])
    with pytest.raises(MergeTargetError):
        merge_fragment(cv, "tailor_cv_to_job_description", "text")


def test_tailoring_with_detailed_updates(cv):
    out = merge_fragment(cv, "tailor_cv_to_job_description", _tailoring())

    assert out.summary == "Tailored summary."
    assert [s.category for s in out.skills] == ["DevOps", "Cloud"]
    assert out.skills[0].id == "s1"
    assert out.experience[0].job_title == "Senior Developer"
    assert out.experience[0].responsibilities == ["Shipped X."]
    # blank title never overwrites
    assert out.experience[1].job_title == "Intern"
    assert out.experience[1].responsibilities == ["Helped Y."]
    assert out.experience[2].job_title == "Lead"
    assert len(out.all_ids()) == len(out.experience) + len(out.education) + len(out.skills)


def test_tailoring_without_detailed_updates(cv):
    out = merge_fragment(cv, "tailor_cv_to_job_description", _tailoring(), apply_detailed_updates=False)
    assert [e.job_title for e in out.experience] == ["Developer", "Intern"]
    assert out.experience[0].responsibilities == ["Shipped X."]


def test_tailoring_reuses_existing_skill_id_by_category(cv):
    update = _tailoring(updated_skills=[SkillEntry(id="model-made", category="Languages", skills=["Go"])])
    out = apply_tailoring(cv, update)
    assert out.skills == [SkillEntry(id="s2", category="Languages", skills=["Go"])]


def test_tailoring_ignores_unknown_experience_ids(cv):
    update = _tailoring(updated_experience=[ExperienceUpdate(id="ghost", responsibilities=["x"])])
    out = apply_tailoring(cv, update)
    assert [e.responsibilities for e in out.experience] == [["Old 1"], ["Old 2"]]


def test_tailoring_twice_does_not_duplicate_skills(cv):
    update = _tailoring()
    once = apply_tailoring(cv, update)
    twice = apply_tailoring(once, update)
    assert once.skills == twice.skills
