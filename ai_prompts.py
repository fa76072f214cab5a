# ai_prompts.py
import json
import re
from typing import Callable, Dict, Optional, Tuple

from pydantic import ValidationError

from models import GenerationContext, PersonalInfo, SectionType

PLACEHOLDER_NAME = "Your Name (Update Me!)"

# words in a job description that imply a senior role
SENIORITY_WORDS = re.compile(r"\b(senior|sr\.?|lead|manager|director|principal|head of)\b", re.IGNORECASE)
YEARS_OF_EXPERIENCE = re.compile(r"(\d{1,2})\s*\+?\s*(?:years|yrs)", re.IGNORECASE)
SENIOR_YEARS_THRESHOLD = 7

JSON_ONLY = "Return ONLY valid JSON. No prose, no markdown, no backticks, no explanation."


class PromptError(ValueError):
    """Caller error: unknown section type or missing input. No model call is made."""


def parse_section_type(value) -> SectionType:
    if isinstance(value, SectionType):
        return value
    try:
        return SectionType(value)
    except ValueError:
        raise PromptError(f"Unsupported section type: {value}") from None


def looks_senior(job_description: str) -> bool:
    text = job_description or ""
    if SENIORITY_WORDS.search(text):
        return True
    for m in YEARS_OF_EXPERIENCE.finditer(text):
        if int(m.group(1)) >= SENIOR_YEARS_THRESHOLD:
            return True
    return False


def _personal_info_schema(title_value: str) -> Tuple[str, dict]:
    """Field rules for PersonalInfo plus an example object, both built from the model."""
    example = PersonalInfo(name=PLACEHOLDER_NAME, title=title_value).to_wire()
    rules = []
    for key, value in example.items():
        if key == "name":
            rules.append(f'"name" (string, set to "{PLACEHOLDER_NAME}")')
        elif key == "title":
            rules.append(f'"title" (string, {title_value})')
        elif isinstance(value, bool):
            rules.append(f'"{key}" (boolean, {str(value).lower()})')
        else:
            rules.append(f'"{key}" (string, empty)')
    return ", ".join(rules), example


# -------------------------------------------------------------------
# Free text
# -------------------------------------------------------------------
def _summary(user_input: str, ctx: GenerationContext) -> str:
    prompt = (
        "Write a concise and compelling professional summary for a CV (2-4 sentences).\n"
        f'Base it on the following input: "{user_input}".\n'
        "Return ONLY the summary text. No headings, no bullets, no quotes."
    )
    existing = ctx.existing_cv or {}
    roles = [
        f"{e.get('jobTitle') or ''} at {e.get('company') or ''}".strip()
        for e in (existing.get("experience") or [])
        if isinstance(e, dict)
    ]
    if roles:
        prompt += f"\nConsider the following experience: {', '.join(roles)}."
    return prompt


# -------------------------------------------------------------------
# JSON string arrays
# -------------------------------------------------------------------
def _experience_responsibilities(user_input: str, ctx: GenerationContext) -> str:
    return f"""
Write 3-5 impactful bullet points for the responsibilities of a CV job entry.
Focus on achievements and start each bullet with an action verb.

Job Title: {ctx.job_title or 'N/A'}
Company: {ctx.company or 'N/A'}
Keywords/details: "{user_input}"

{JSON_ONLY}
The JSON must be an array of strings, e.g. ["Developed new product features.", "Managed a team of 5."]
""".strip()


def _education_details(user_input: str, ctx: GenerationContext) -> str:
    return f"""
Write 1-2 concise bullet points for the details of a CV education entry.
Focus on academic achievements, relevant coursework or honours.

Degree: {ctx.degree or 'N/A'}
Institution: {ctx.institution or 'N/A'}
Keywords/details: "{user_input}"

{JSON_ONLY}
The JSON must be an array of strings, e.g. ["GPA: 3.8/4.0", "Relevant coursework: Advanced Algorithms, AI."]
""".strip()


def _skill_suggestions(user_input: str, ctx: GenerationContext) -> str:
    return f"""
For the CV skill category "{ctx.skill_category or 'General Skills'}", suggest 3-5 relevant skills.
User-provided keywords/focus: "{user_input}".

{JSON_ONLY}
The JSON must be an array of strings, e.g. ["JavaScript", "React", "Node.js"]
""".strip()


# -------------------------------------------------------------------
# JSON single objects
# -------------------------------------------------------------------
def _new_experience_entry(user_input: str, ctx: GenerationContext) -> str:
    return f"""
Based on the following input about a job: "{user_input}", write a complete job experience entry for a CV.
Include job title, company, location, start date, end date ("Present" if ongoing, otherwise estimate)
and 3-5 responsibility bullet points.

Rules:
- Be professional and infer reasonable details that are not given.
- If no location is given, use a common city such as "Anytown, USA".
- If no company is given, use a placeholder such as "Global Corp Inc.".
- Dates look like "Jan 2020", "Dec 2022" or "Present".
- Do NOT include an "id" field.

{JSON_ONLY}
The JSON must be one object with exactly this structure:
{{"jobTitle": "string", "company": "string", "location": "string", "startDate": "string", "endDate": "string", "responsibilities": ["string", "string"]}}
""".strip()


def _new_education_entry(user_input: str, ctx: GenerationContext) -> str:
    return f"""
Based on the following input about an academic qualification: "{user_input}", write a complete education entry for a CV.
Include degree, institution, location, graduation date and 1-2 detail bullet points (GPA, honours, coursework).

Rules:
- Be professional and infer reasonable details that are not given.
- If no location is given, use a common city such as "Anytown, USA".
- If no institution is given, use a placeholder such as "State University Online".
- Graduation date looks like "May 2020".
- Do NOT include an "id" field.

{JSON_ONLY}
The JSON must be one object with exactly this structure:
{{"degree": "string", "institution": "string", "location": "string", "graduationDate": "string", "details": ["string", "string"]}}
""".strip()


# -------------------------------------------------------------------
# Full CV documents
# -------------------------------------------------------------------
def _cv_example(personal_info: dict, experience_count: int) -> str:
    example = {
        "personalInfo": personal_info,
        "summary": "Generated summary...",
        "experience": [
            {
                "jobTitle": "Relevant Job Title",
                "company": "Example Company",
                "location": "City, ST",
                "startDate": "Month Year",
                "endDate": "Month Year or Present",
                "responsibilities": ["Responsibility 1.", "Responsibility 2."],
            }
        ] * experience_count,
        "education": [
            {
                "degree": "Relevant Degree",
                "institution": "University Name",
                "location": "City, ST",
                "graduationDate": "Month Year",
                "details": ["Detail 1.", "Detail 2."],
            }
        ],
        "skills": [{"category": "Skill Category", "skills": ["Skill A", "Skill B"]}],
    }
    return json.dumps(example, indent=2)


def _initial_cv_from_title(user_input: str, ctx: GenerationContext) -> str:
    rules, example = _personal_info_schema(f'set to the job title "{user_input}"')
    example["title"] = user_input
    return f"""
Based on the job title "{user_input}", write a complete CV structure.

The CV must include:
1. personalInfo: a JSON object with EXACTLY these fields: {rules}. No other fields are allowed in personalInfo.
2. summary: a professional summary of 2-4 sentences relevant to the job title.
3. experience: 1 or 2 sample experience entries relevant to the job title, each with "jobTitle", "company",
   "location", "startDate", "endDate" and 2-3 "responsibilities".
4. education: one sample education entry with "degree", "institution", "location", "graduationDate" and 1-2 "details".
5. skills: two skill entries, each with a "category" and a "skills" array of 3-4 relevant skills.

Do NOT include "id" fields anywhere; they are added later.

{JSON_ONLY}
The JSON must be one object shaped like this example:
{_cv_example(example, 1)}
""".strip()


def _job_description(user_input: str, ctx: GenerationContext) -> str:
    """The JD text: the user input, or context.jobDescription when the input is blank."""
    return user_input.strip() or (ctx.job_description or "").strip()


def _initial_cv_from_job_description(user_input: str, ctx: GenerationContext) -> str:
    rules, example = _personal_info_schema("set to the core job title you extracted from the job description")
    example["title"] = "Extracted Title from JD"

    job_description = _job_description(user_input, ctx)
    if looks_senior(job_description):
        experience_rule = (
            "The job description implies a senior-level role: write 2 or 3 distinct sample experience entries "
            "showing progressively more responsible roles relevant to the job description."
        )
        count = 2
    else:
        experience_rule = "Write 1 or 2 distinct sample experience entries relevant to the job description."
        count = 1

    return f"""
You are an expert CV writer. Based on the following job description:
---
{job_description}
---
Write a complete foundational CV. First extract the core job title from the job description and build the CV around it.

The CV must include:
1. personalInfo: a JSON object with EXACTLY these fields: {rules}. No other fields are allowed in personalInfo.
2. summary: a professional summary (2-4 sentences) highly relevant to the job description and the extracted job title.
3. experience: {experience_rule}
   Each entry must have "jobTitle", "company", "location", "startDate", "endDate" ("Present" for the most recent)
   and 2-3 "responsibilities" aligned with the job description.
4. education: one sample education entry with "degree", "institution", "location", "graduationDate" and 1-2 "details".
5. skills: one or two skill entries, each with a "category" and a "skills" array of 3-5 skills taken from the job description.

Do NOT include "id" fields anywhere; they are added later.

{JSON_ONLY}
The JSON must be one object shaped like this example:
{_cv_example(example, count)}
""".strip()


def relevant_cv_parts(existing_cv: Optional[dict]) -> dict:
    """The slice of the CV the tailoring prompt needs (ids are kept so the model can echo them)."""
    cv = existing_cv or {}
    return {
        "summary": cv.get("summary") or "",
        "skills": [
            {"id": s.get("id"), "category": s.get("category"), "skills": s.get("skills") or []}
            for s in (cv.get("skills") or [])
            if isinstance(s, dict)
        ],
        "experience": [
            {
                "id": e.get("id"),
                "jobTitle": e.get("jobTitle"),
                "company": e.get("company"),
                "responsibilities": e.get("responsibilities") or [],
            }
            for e in (cv.get("experience") or [])
            if isinstance(e, dict)
        ],
    }


def _tailor_cv_to_job_description(user_input: str, ctx: GenerationContext) -> str:
    job_description = _job_description(user_input, ctx)
    detailed = ctx.detailed_updates
    if detailed:
        preference = "The user ALLOWS updates to existing job titles and suggestions of new experience entries."
        title_rule = (
            "Compare the original job title with the target job description and return the title that best "
            "matches it. If the original title is already optimal, return it unchanged."
        )
        new_entries_rule = (
            "If the job description implies a clearly more senior role than the current CV shows, suggest 1 or 2 "
            "NEW experience entries that bridge the gap. Each has \"jobTitle\", \"company\", \"location\", "
            "\"startDate\", \"endDate\" and \"responsibilities\". Do NOT include \"id\"."
        )
    else:
        preference = (
            "The user wants to KEEP existing job titles and does NOT want new experience entries. "
            "Only update responsibilities of existing entries."
        )
        title_rule = "MUST be the original job title for this experience id. Do not change it."
        new_entries_rule = "MUST be an empty array."

    return f"""
You are an expert CV tailoring assistant.

Job description to target:
---
{job_description}
---

Current CV content (JSON):
---
{json.dumps(relevant_cv_parts(ctx.existing_cv))}
---

User preference for experience updates: {preference}

Revise the current CV content so it is strongly aligned with the job description.

{JSON_ONLY}
The JSON must be one object with this structure:
{{
  "updatedSummary": "string",
  "updatedSkills": [{{"id": "string", "category": "string", "skills": ["string"]}}],
  "updatedExperience": [{{"id": "string", "updatedJobTitle": "string", "responsibilities": ["string"]}}],
  "suggestedNewExperienceEntries": []
}}

Field rules:
- "updatedSummary": 2-4 sentences covering the most important requirements of the job description.
- "updatedSkills": replaces the whole skills section. Every entry MUST have an "id": reuse the original id when
  an existing category is being updated, otherwise invent a new unique id such as "new_skill_cat_1".
  Prioritise skills named in the job description.
- "updatedExperience": one object for EVERY experience entry in the current CV, with its original "id".
  - "responsibilities": ALWAYS rewrite these (2-4 bullets) to highlight achievements relevant to the job
    description, using strong action verbs and its keywords. Quantify where possible.
  - "updatedJobTitle": {title_rule}
- "suggestedNewExperienceEntries": {new_entries_rule}
""".strip()


PROMPT_BUILDERS: Dict[SectionType, Tuple[Callable[[str, GenerationContext], str], bool]] = {
    SectionType.SUMMARY: (_summary, False),
    SectionType.EXPERIENCE_RESPONSIBILITIES: (_experience_responsibilities, True),
    SectionType.EDUCATION_DETAILS: (_education_details, True),
    SectionType.SKILL_SUGGESTIONS: (_skill_suggestions, True),
    SectionType.NEW_EXPERIENCE_ENTRY: (_new_experience_entry, True),
    SectionType.NEW_EDUCATION_ENTRY: (_new_education_entry, True),
    SectionType.INITIAL_CV_FROM_TITLE: (_initial_cv_from_title, True),
    SectionType.INITIAL_CV_FROM_JOB_DESCRIPTION: (_initial_cv_from_job_description, True),
    SectionType.TAILOR_CV_TO_JOB_DESCRIPTION: (_tailor_cv_to_job_description, True),
}


def build_prompt(section_type, user_input: Optional[str], context=None) -> Tuple[str, bool]:
    """
    Returns (prompt, expects_json).

    Raises PromptError for an unknown section type or a missing user input,
    before anything is sent to the model.
    """
    kind = parse_section_type(section_type)
    if user_input is None:
        raise PromptError("sectionType and userInput are required fields.")

    if context is None:
        ctx = GenerationContext()
    elif isinstance(context, GenerationContext):
        ctx = context
    else:
        try:
            ctx = GenerationContext.model_validate(context)
        except ValidationError as e:
            raise PromptError(f"Invalid generation context: {e.error_count()} error(s)") from e

    builder, expects_json = PROMPT_BUILDERS[kind]
    return builder(str(user_input), ctx), expects_json
