# cv_merge.py
"""
Apply a normalized AI fragment to a CV.

Every function returns a NEW CVData and leaves the one passed in untouched.
Existing entries are never reordered and appended entries always get an id
that is unique inside the document.
"""
import logging
from typing import List, Optional, Set

from ai_prompts import parse_section_type
from models import (
    AutofillTarget,
    CVData,
    EducationEntry,
    ExperienceEntry,
    INITIAL_CV_SECTION_TYPES,
    SectionType,
    SkillEntry,
    TailoredCVUpdate,
    new_id,
)

logger = logging.getLogger(__name__)

# section type -> (CV list attribute, list field on the entry)
LIST_TARGETS = {
    SectionType.EXPERIENCE_RESPONSIBILITIES: ("experience", "responsibilities"),
    SectionType.EDUCATION_DETAILS: ("education", "details"),
    SectionType.SKILL_SUGGESTIONS: ("skills", "skills"),
}


class MergeTargetError(ValueError):
    """The fragment's section type does not fit the requested target."""


def _unique_id(candidate: Optional[str], used: Set[str]) -> str:
    if candidate and candidate not in used:
        return candidate
    fresh = new_id()
    while fresh in used:
        fresh = new_id()
    return fresh


def append_entry(cv: CVData, section: str, entry) -> CVData:
    new_cv = cv.model_copy(deep=True)
    entry = entry.model_copy(deep=True)
    entry.id = _unique_id(entry.id, new_cv.all_ids())
    getattr(new_cv, section).append(entry)
    return new_cv


def replace_summary(cv: CVData, summary: str) -> CVData:
    new_cv = cv.model_copy(deep=True)
    new_cv.summary = summary
    return new_cv


def replace_list_field(cv: CVData, section: str, index: Optional[int], field: str, values: List[str]) -> CVData:
    """
    Replace one entry's list field, addressed by the entry's position when the
    request was issued. If that position is gone (the user removed the entry
    meanwhile) the update is dropped and the CV comes back unchanged.
    """
    new_cv = cv.model_copy(deep=True)
    entries = getattr(new_cv, section)

    if index is None or index < 0 or index >= len(entries):
        # TODO: surface dropped updates to the editor once product decides how stale targets are reported
        logger.warning(f"[MERGE] Stale target {section}[{index}].{field}, update dropped")
        return new_cv

    setattr(entries[index], field, list(values))
    return new_cv


def apply_tailoring(cv: CVData, update: TailoredCVUpdate, apply_detailed_updates: bool = True) -> CVData:
    new_cv = cv.model_copy(deep=True)
    new_cv.summary = update.updated_summary

    # skills: wholesale replacement, reusing ids of matching existing entries
    used: Set[str] = {e.id for e in new_cv.experience} | {e.id for e in new_cv.education}
    skills: List[SkillEntry] = []
    for updated in update.updated_skills:
        # first match wins when two existing entries share a category
        existing = next(
            (s for s in cv.skills if s.id == updated.id or s.category == updated.category),
            None,
        )
        preferred = existing.id if existing and existing.id not in used else updated.id
        skill_id = _unique_id(preferred, used)
        used.add(skill_id)
        skills.append(SkillEntry(id=skill_id, category=updated.category, skills=list(updated.skills)))
    new_cv.skills = skills

    by_id = {e.id: e for e in new_cv.experience}
    for exp_update in update.updated_experience:
        entry = by_id.get(exp_update.id)
        if entry is None:
            continue
        entry.responsibilities = list(exp_update.responsibilities)
        title = exp_update.updated_job_title
        if apply_detailed_updates and isinstance(title, str) and title.strip():
            entry.job_title = title

    if apply_detailed_updates:
        used = new_cv.all_ids()
        for draft in update.suggested_new_experience_entries:
            entry_id = _unique_id(None, used)
            used.add(entry_id)
            new_cv.experience.append(ExperienceEntry(id=entry_id, **draft.model_dump()))

    return new_cv


def merge_fragment(
    cv: CVData,
    section_type,
    fragment,
    target: Optional[AutofillTarget] = None,
    apply_detailed_updates: bool = True,
) -> CVData:
    """
    Dispatch a normalized fragment to the matching merge rule.

    `target` says where list replacements and new entries land; it is not
    needed for summary, full-CV and tailoring fragments.
    """
    kind = parse_section_type(section_type)

    if kind in INITIAL_CV_SECTION_TYPES:
        if not isinstance(fragment, CVData):
            raise MergeTargetError(f"{kind.value} needs a full CV fragment")
        return fragment.model_copy(deep=True)

    if kind == SectionType.TAILOR_CV_TO_JOB_DESCRIPTION:
        if not isinstance(fragment, TailoredCVUpdate):
            raise MergeTargetError(f"{kind.value} needs a tailoring fragment")
        return apply_tailoring(cv, fragment, apply_detailed_updates)

    if kind == SectionType.SUMMARY:
        if not isinstance(fragment, str):
            raise MergeTargetError("summary needs a text fragment")
        return replace_summary(cv, fragment)

    if kind in (SectionType.NEW_EXPERIENCE_ENTRY, SectionType.NEW_EDUCATION_ENTRY):
        if target is not None and target.action not in (None, "add"):
            raise MergeTargetError(f"{kind.value} only supports the 'add' action")

    if kind == SectionType.NEW_EXPERIENCE_ENTRY:
        if not isinstance(fragment, ExperienceEntry):
            raise MergeTargetError(f"{kind.value} needs an experience entry")
        return append_entry(cv, "experience", fragment)

    if kind == SectionType.NEW_EDUCATION_ENTRY:
        if not isinstance(fragment, EducationEntry):
            raise MergeTargetError(f"{kind.value} needs an education entry")
        return append_entry(cv, "education", fragment)

    section, field = LIST_TARGETS[kind]
    if not isinstance(fragment, list):
        raise MergeTargetError(f"{kind.value} needs a list of strings")
    if target is None or target.section != section or (target.field and target.field != field):
        raise MergeTargetError(f"{kind.value} must target {section}[i].{field}")
    return replace_list_field(cv, section, target.index, field, fragment)
