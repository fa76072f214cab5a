# models.py
import uuid
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def new_id() -> str:
    return str(uuid.uuid4())


class CamelModel(BaseModel):
    # wire format is camelCase (jobTitle, graduationDate, ...); python side is snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def nulls_as_missing(cls, data):
        # JSON null means "not given": the field default applies, required fields stay required
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


# -------------------------
# CV document
# -------------------------
class PersonalInfo(CamelModel):
    name: str = ""
    title: str = ""
    phone: str = ""
    email: str = ""
    linkedin: str = ""
    github: str = ""
    portfolio: str = ""
    address: str = ""

    portrait_url: str = ""
    show_portrait: bool = False

    show_phone: bool = True
    show_email: bool = True
    show_linkedin: bool = True
    show_github: bool = True
    show_portfolio: bool = True
    show_address: bool = False

    def visible_contacts(self) -> List[Tuple[str, str]]:
        """
        (field, value) pairs that may appear in rendered output.
        A field shows only when it has a value AND its show_* flag is on.
        """
        out = []
        for field in ("phone", "email", "linkedin", "github", "portfolio", "address"):
            value = (getattr(self, field) or "").strip()
            if value and getattr(self, f"show_{field}"):
                out.append((field, value))
        return out

    @property
    def portrait_visible(self) -> bool:
        return bool(self.portrait_url.strip()) and self.show_portrait


class ExperienceDraft(CamelModel):
    job_title: str = ""
    company: str = ""
    location: str = ""
    start_date: str = ""
    end_date: str = ""  # free text, "Present" allowed
    responsibilities: List[str] = Field(default_factory=list)


class ExperienceEntry(ExperienceDraft):
    id: str = Field(default_factory=new_id, min_length=1)


class EducationDraft(CamelModel):
    degree: str = ""
    institution: str = ""
    location: str = ""
    graduation_date: str = ""
    details: List[str] = Field(default_factory=list)


class EducationEntry(EducationDraft):
    id: str = Field(default_factory=new_id, min_length=1)


class SkillDraft(CamelModel):
    category: str = ""
    skills: List[str] = Field(default_factory=list)


class SkillEntry(SkillDraft):
    id: str = Field(default_factory=new_id, min_length=1)


class CVData(CamelModel):
    personal_info: PersonalInfo = Field(default_factory=PersonalInfo)
    summary: str = ""
    experience: List[ExperienceEntry] = Field(default_factory=list)
    education: List[EducationEntry] = Field(default_factory=list)
    skills: List[SkillEntry] = Field(default_factory=list)

    def all_ids(self) -> set:
        return {e.id for e in self.experience} | {e.id for e in self.education} | {s.id for s in self.skills}


# -------------------------
# Tailoring (transient, never persisted)
# -------------------------
class ExperienceUpdate(CamelModel):
    id: str
    responsibilities: List[str] = Field(default_factory=list)
    updated_job_title: Optional[str] = None


class TailoredCVUpdate(CamelModel):
    updated_summary: str
    updated_skills: List[SkillEntry]
    updated_experience: List[ExperienceUpdate] = Field(default_factory=list)
    suggested_new_experience_entries: List[ExperienceDraft] = Field(default_factory=list)


# -------------------------
# Generation request
# -------------------------
class SectionType(str, Enum):
    SUMMARY = "summary"
    EXPERIENCE_RESPONSIBILITIES = "experience_responsibilities"
    EDUCATION_DETAILS = "education_details"
    SKILL_SUGGESTIONS = "skill_suggestions"
    NEW_EXPERIENCE_ENTRY = "new_experience_entry"
    NEW_EDUCATION_ENTRY = "new_education_entry"
    INITIAL_CV_FROM_TITLE = "initial_cv_from_title"
    INITIAL_CV_FROM_JOB_DESCRIPTION = "initial_cv_from_job_description"
    TAILOR_CV_TO_JOB_DESCRIPTION = "tailor_cv_to_job_description"


LIST_SECTION_TYPES = {
    SectionType.EXPERIENCE_RESPONSIBILITIES,
    SectionType.EDUCATION_DETAILS,
    SectionType.SKILL_SUGGESTIONS,
}

INITIAL_CV_SECTION_TYPES = {
    SectionType.INITIAL_CV_FROM_TITLE,
    SectionType.INITIAL_CV_FROM_JOB_DESCRIPTION,
}


class GenerationContext(CamelModel):
    # open bag: unknown keys are dropped (pydantic default extra="ignore")
    job_title: Optional[str] = None
    company: Optional[str] = None
    degree: Optional[str] = None
    institution: Optional[str] = None
    skill_category: Optional[str] = None
    existing_cv: Optional[dict] = Field(default=None, alias="existingCV")
    job_description: Optional[str] = None
    apply_detailed_experience_updates: Optional[bool] = None

    @property
    def detailed_updates(self) -> bool:
        # unset means allowed
        if self.apply_detailed_experience_updates is None:
            return True
        return bool(self.apply_detailed_experience_updates)


# -------------------------
# Merge target (where a fragment lands in the CV)
# -------------------------
class AutofillTarget(CamelModel):
    section: str
    index: Optional[int] = None
    field: Optional[str] = None
    action: Optional[str] = None  # "add" | "update"
