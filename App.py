import os

import streamlit as st
import streamlit.components.v1 as components

from ai_normalize import AIFormatError, fragment_from_wire
from api_client import APIClient, APIConfigError, APIError
from config import configure_logging
from cv_merge import MergeTargetError, merge_fragment
from models import (
    AutofillTarget,
    CVData,
    EducationEntry,
    ExperienceEntry,
    PersonalInfo,
    SectionType,
    SkillEntry,
)
from utils import CONTACT_LABELS, THEMES, list_templates, render_cv_docx_bytes, render_cv_html, render_cv_pdf_bytes

configure_logging(os.getenv("LOG_LEVEL", "INFO"))


# -------------------------
# PAGE CONFIG (MUST BE FIRST st.* CALL)
# -------------------------
st.set_page_config(
    page_title="CV Builder",
    page_icon="📄",
    layout="wide",
    initial_sidebar_state="expanded",
)


# =========================
# Session helpers
# =========================
def get_client() -> APIClient:
    return APIClient(token=st.session_state.get("api_token"))


def logout() -> None:
    for key in ("api_token", "user", "cv", "cv_id", "cv_name", "template_id", "acc_username", "acc_email", "acc_password"):
        st.session_state.pop(key, None)
    reset_editor_widgets()


def reset_editor_widgets() -> None:
    # editor widgets own their values once created; drop them so they re-read the CV
    for key in list(st.session_state.keys()):
        if str(key).startswith("ed_"):
            del st.session_state[key]


def get_cv() -> CVData:
    if "cv" not in st.session_state:
        st.session_state["cv"] = CVData()
    return st.session_state["cv"]


def set_cv(cv: CVData) -> None:
    st.session_state["cv"] = cv
    reset_editor_widgets()


def flash(message: str) -> None:
    st.session_state["_flash"] = message


def show_flash() -> None:
    message = st.session_state.pop("_flash", None)
    if message:
        st.success(message)


def handle_api_error(e: APIError) -> None:
    if e.status_code == 401:
        logout()
        st.error("Your session has expired. Please sign in again.")
    elif e.status_code == 503:
        st.error("AI is not available right now. Please try again later.")
    else:
        st.error(str(e))


def _lines(text: str) -> list:
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


def _csv(text: str) -> list:
    return [s.strip() for s in (text or "").split(",") if s.strip()]


# =========================
# Auth UI
# =========================
def auth_ui():
    """Sign in / register."""
    tab_login, tab_register = st.tabs(["Sign in", "Create account"])

    with tab_login:
        login_email = st.text_input("Email", key="auth_login_email")
        login_password = st.text_input("Password", type="password", key="auth_login_password")

        if st.button("Sign in", key="auth_btn_login"):
            if not login_email or not login_password:
                st.error("Please enter both email and password.")
            else:
                client = get_client()
                try:
                    data = client.login(login_email, login_password)
                except APIError as e:
                    st.error(str(e))
                else:
                    st.session_state["api_token"] = data["token"]
                    st.session_state["user"] = data["user"]
                    flash(f"Welcome back, {data['user']['username']}!")
                    st.rerun()

    with tab_register:
        reg_username = st.text_input("Username", key="auth_reg_username")
        reg_email = st.text_input("Email", key="auth_reg_email")
        reg_password = st.text_input("Password", type="password", key="auth_reg_password")
        reg_password2 = st.text_input("Confirm password", type="password", key="auth_reg_password2")

        if st.button("Create account", key="auth_btn_register"):
            if not reg_username or not reg_email or not reg_password:
                st.error("Please fill in all required fields.")
                st.stop()
            if reg_password != reg_password2:
                st.error("Passwords do not match.")
                st.stop()

            client = get_client()
            try:
                data = client.register(reg_username, reg_email, reg_password)
            except APIError as e:
                st.error(str(e))
                st.stop()

            st.session_state["api_token"] = data["token"]
            st.session_state["user"] = data["user"]
            flash("Account created.")
            st.rerun()


# =========================
# Sidebar: saved CVs + look
# =========================
def account_settings(client: APIClient, user: dict) -> None:
    with st.expander("Account", expanded=False):
        username = st.text_input("Username", value=user["username"], key="acc_username")
        email = st.text_input("Email", value=user["email"], key="acc_email")
        password = st.text_input("New password", type="password", key="acc_password")

        if st.button("Update account", key="acc_btn_save"):
            changes = {
                "username": username.strip() if username.strip() != user["username"] else None,
                "email": email.strip() if email.strip() != user["email"] else None,
                "password": password or None,
            }
            if not any(changes.values()):
                st.info("Nothing to update.")
                return
            try:
                updated = client.update_me(**changes)
            except APIError as e:
                handle_api_error(e)
            else:
                st.session_state["user"] = {**user, **updated}
                st.session_state.pop("acc_password", None)
                flash("Account updated.")
                st.rerun()


def sidebar():
    user = st.session_state["user"]
    client = get_client()

    with st.sidebar:
        st.markdown(f"**{user['username']}**  \n{user['email']}")
        if st.button("Sign out", key="sb_logout"):
            logout()
            st.rerun()

        account_settings(client, user)

        st.divider()
        st.subheader("My CVs")

        try:
            saved = client.list_cvs()
        except APIError as e:
            handle_api_error(e)
            saved = []

        if st.button("➕ New CV", key="sb_new_cv"):
            st.session_state.pop("cv_id", None)
            st.session_state["cv_name"] = "Untitled CV"
            st.session_state.pop("cv_name_input", None)
            set_cv(CVData())
            st.rerun()

        for record in saved:
            c1, c2 = st.columns([4, 1])
            label = record.get("name") or "Untitled CV"
            if record["id"] == st.session_state.get("cv_id"):
                label = f"▶ {label}"
            if c1.button(label, key=f"sb_open_{record['id']}"):
                try:
                    full = client.get_cv(record["id"])
                except APIError as e:
                    handle_api_error(e)
                else:
                    st.session_state["cv_id"] = full["id"]
                    st.session_state["cv_name"] = full.get("name") or "Untitled CV"
                    st.session_state["template_id"] = full.get("template_id") or "classic"
                    st.session_state.pop("sb_template", None)
                    st.session_state.pop("cv_name_input", None)
                    set_cv(CVData.model_validate(full["cv_data"]))
                    st.rerun()
            if c2.button("🗑", key=f"sb_del_{record['id']}"):
                try:
                    client.delete_cv(record["id"])
                except APIError as e:
                    handle_api_error(e)
                else:
                    if record["id"] == st.session_state.get("cv_id"):
                        st.session_state.pop("cv_id", None)
                    flash("CV deleted.")
                    st.rerun()

        st.divider()
        st.subheader("Look")

        templates = list_templates()
        ids = [t["id"] for t in templates]
        current = st.session_state.get("template_id", "classic")
        st.session_state["template_id"] = st.selectbox(
            "Template",
            ids,
            index=ids.index(current) if current in ids else 0,
            format_func=lambda tid: next(t["name"] for t in templates if t["id"] == tid),
            key="sb_template",
        )
        st.session_state["theme_name"] = st.selectbox("Theme", list(THEMES.keys()), key="sb_theme")


# =========================
# Editor
# =========================
def edit_personal_info(info: PersonalInfo) -> PersonalInfo:
    values = {}
    c1, c2 = st.columns(2)
    values["name"] = c1.text_input("Full name", value=info.name, key="ed_pi_name")
    values["title"] = c2.text_input("Professional title", value=info.title, key="ed_pi_title")

    for field, label in CONTACT_LABELS.items():
        col_value, col_show = st.columns([5, 1])
        values[field] = col_value.text_input(label, value=getattr(info, field), key=f"ed_pi_{field}")
        values[f"show_{field}"] = col_show.checkbox(
            "Show", value=getattr(info, f"show_{field}"), key=f"ed_pi_show_{field}"
        )

    col_value, col_show = st.columns([5, 1])
    values["portrait_url"] = col_value.text_input("Portrait URL", value=info.portrait_url, key="ed_pi_portrait_url")
    values["show_portrait"] = col_show.checkbox("Show", value=info.show_portrait, key="ed_pi_show_portrait")
    return PersonalInfo(**values)


def edit_experience(entries):
    """Returns (entries, action). Actions are applied after the whole form is read."""
    out, action = [], None
    for i, exp in enumerate(entries):
        with st.expander(f"{exp.job_title or 'New role'} · {exp.company or '…'}", expanded=False):
            c1, c2 = st.columns(2)
            job_title = c1.text_input("Job title", value=exp.job_title, key=f"ed_exp_title_{exp.id}")
            company = c2.text_input("Company", value=exp.company, key=f"ed_exp_company_{exp.id}")
            c1, c2, c3 = st.columns(3)
            location = c1.text_input("Location", value=exp.location, key=f"ed_exp_loc_{exp.id}")
            start = c2.text_input("Start", value=exp.start_date, key=f"ed_exp_start_{exp.id}")
            end = c3.text_input("End", value=exp.end_date, key=f"ed_exp_end_{exp.id}")
            bullets = st.text_area(
                "Responsibilities (one per line)",
                value="\n".join(exp.responsibilities),
                key=f"ed_exp_resp_{exp.id}",
                height=140,
            )
            hint = st.text_input("Keywords for AI", key=f"ed_exp_hint_{exp.id}")

            c1, c2 = st.columns(2)
            if c1.button("✨ Write responsibilities", key=f"ed_exp_ai_{exp.id}"):
                action = (
                    "ai",
                    SectionType.EXPERIENCE_RESPONSIBILITIES,
                    hint or job_title,
                    {"jobTitle": job_title, "company": company},
                    AutofillTarget(section="experience", index=i, field="responsibilities"),
                )
            if c2.button("Remove", key=f"ed_exp_del_{exp.id}"):
                action = ("remove", "experience", i)

            out.append(ExperienceEntry(
                id=exp.id, job_title=job_title, company=company, location=location,
                start_date=start, end_date=end, responsibilities=_lines(bullets),
            ))

    c1, c2 = st.columns([3, 1])
    about = c1.text_input("Describe a role for AI to draft", key="ed_exp_new_hint")
    if c2.button("✨ Draft role", key="ed_exp_new_ai") and about.strip():
        action = ("ai", SectionType.NEW_EXPERIENCE_ENTRY, about, {}, AutofillTarget(section="experience", action="add"))
    if st.button("Add empty role", key="ed_exp_add"):
        action = ("add", "experience")
    return out, action


def edit_education(entries):
    out, action = [], None
    for i, edu in enumerate(entries):
        with st.expander(f"{edu.degree or 'New qualification'} · {edu.institution or '…'}", expanded=False):
            c1, c2 = st.columns(2)
            degree = c1.text_input("Degree", value=edu.degree, key=f"ed_edu_degree_{edu.id}")
            institution = c2.text_input("Institution", value=edu.institution, key=f"ed_edu_inst_{edu.id}")
            c1, c2 = st.columns(2)
            location = c1.text_input("Location", value=edu.location, key=f"ed_edu_loc_{edu.id}")
            graduated = c2.text_input("Graduation date", value=edu.graduation_date, key=f"ed_edu_grad_{edu.id}")
            details = st.text_area(
                "Details (one per line)", value="\n".join(edu.details), key=f"ed_edu_details_{edu.id}"
            )
            hint = st.text_input("Keywords for AI", key=f"ed_edu_hint_{edu.id}")

            c1, c2 = st.columns(2)
            if c1.button("✨ Write details", key=f"ed_edu_ai_{edu.id}"):
                action = (
                    "ai",
                    SectionType.EDUCATION_DETAILS,
                    hint or degree,
                    {"degree": degree, "institution": institution},
                    AutofillTarget(section="education", index=i, field="details"),
                )
            if c2.button("Remove", key=f"ed_edu_del_{edu.id}"):
                action = ("remove", "education", i)

            out.append(EducationEntry(
                id=edu.id, degree=degree, institution=institution, location=location,
                graduation_date=graduated, details=_lines(details),
            ))

    c1, c2 = st.columns([3, 1])
    about = c1.text_input("Describe a qualification for AI to draft", key="ed_edu_new_hint")
    if c2.button("✨ Draft qualification", key="ed_edu_new_ai") and about.strip():
        action = ("ai", SectionType.NEW_EDUCATION_ENTRY, about, {}, AutofillTarget(section="education", action="add"))
    if st.button("Add empty qualification", key="ed_edu_add"):
        action = ("add", "education")
    return out, action


def edit_skills(entries):
    out, action = [], None
    for i, group in enumerate(entries):
        c1, c2, c3, c4 = st.columns([2, 4, 1, 1])
        category = c1.text_input("Category", value=group.category, key=f"ed_sk_cat_{group.id}")
        skills = c2.text_input("Skills (comma separated)", value=", ".join(group.skills), key=f"ed_sk_list_{group.id}")
        if c3.button("✨", key=f"ed_sk_ai_{group.id}", help="Suggest skills for this category"):
            action = (
                "ai",
                SectionType.SKILL_SUGGESTIONS,
                skills or category,
                {"skillCategory": category},
                AutofillTarget(section="skills", index=i, field="skills"),
            )
        if c4.button("🗑", key=f"ed_sk_del_{group.id}"):
            action = ("remove", "skills", i)
        out.append(SkillEntry(id=group.id, category=category, skills=_csv(skills)))

    if st.button("Add skill category", key="ed_sk_add"):
        action = ("add", "skills")
    return out, action


def run_ai(cv: CVData, section_type: SectionType, user_input: str, context: dict,
           target: AutofillTarget = None, apply_detailed: bool = True) -> None:
    client = get_client()
    with st.spinner("Generating with AI..."):
        try:
            data = client.generate(section_type.value, user_input, context)
            fragment = fragment_from_wire(section_type, data)
        except APIError as e:
            handle_api_error(e)
            return
        except AIFormatError as e:
            st.error(str(e))
            return

    try:
        merged = merge_fragment(cv, section_type, fragment, target, apply_detailed)
    except MergeTargetError as e:
        st.error(str(e))
        return

    set_cv(merged)
    flash("AI content applied.")
    st.rerun()


def apply_action(cv: CVData, action) -> None:
    kind = action[0]

    if kind == "ai":
        _, section_type, user_input, context, target = action
        context = {**context, "existingCV": cv.to_wire()}
        run_ai(cv, section_type, user_input, context, target)
        return

    new_cv = cv.model_copy(deep=True)
    if kind == "remove":
        _, section, index = action
        getattr(new_cv, section).pop(index)
    elif kind == "add":
        model = {"experience": ExperienceEntry, "education": EducationEntry, "skills": SkillEntry}[action[1]]
        getattr(new_cv, action[1]).append(model())
    set_cv(new_cv)
    st.rerun()


def quick_start(cv: CVData) -> None:
    with st.expander("🚀 Start from a job title or job description", expanded=not cv.experience):
        title = st.text_input("Job title", key="qs_title", placeholder="e.g. Backend Engineer")
        if st.button("Generate CV from title", key="qs_title_btn") and title.strip():
            run_ai(cv, SectionType.INITIAL_CV_FROM_TITLE, title, {})

        jd = st.text_area("Job description", key="qs_jd", height=160)
        if st.button("Generate CV from job description", key="qs_jd_btn") and jd.strip():
            run_ai(cv, SectionType.INITIAL_CV_FROM_JOB_DESCRIPTION, jd, {})


def tailor_panel(cv: CVData) -> None:
    with st.expander("🎯 Tailor this CV to a job", expanded=False):
        jd = st.text_area("Paste the job description", key="tl_jd", height=180)
        detailed = st.checkbox(
            "Also update job titles and suggest new roles",
            value=True,
            key="tl_detailed",
            help="Off: only summary, skills and responsibilities change.",
        )
        if st.button("Tailor CV", key="tl_btn") and jd.strip():
            context = {
                "existingCV": cv.to_wire(),
                "jobDescription": jd,
                "applyDetailedExperienceUpdates": detailed,
            }
            run_ai(cv, SectionType.TAILOR_CV_TO_JOB_DESCRIPTION, jd, context, apply_detailed=detailed)


def editor():
    cv = get_cv()

    quick_start(cv)
    tailor_panel(cv)

    st.session_state["cv_name"] = st.text_input(
        "CV name", value=st.session_state.get("cv_name", "Untitled CV"), key="cv_name_input"
    )

    tab_info, tab_summary, tab_exp, tab_edu, tab_skills = st.tabs(
        ["Personal info", "Summary", "Experience", "Education", "Skills"]
    )
    actions = []

    with tab_info:
        personal_info = edit_personal_info(cv.personal_info)

    with tab_summary:
        summary = st.text_area("Professional summary", value=cv.summary, key="ed_summary", height=160)
        if st.button("✨ Write summary", key="ed_summary_ai"):
            seed = summary or personal_info.title or "experienced professional"
            actions.append(("ai", SectionType.SUMMARY, seed, {"jobTitle": personal_info.title}, None))

    with tab_exp:
        experience, action = edit_experience(cv.experience)
        actions.append(action)

    with tab_edu:
        education, action = edit_education(cv.education)
        actions.append(action)

    with tab_skills:
        skills, action = edit_skills(cv.skills)
        actions.append(action)

    edited = CVData(
        personal_info=personal_info,
        summary=summary,
        experience=experience,
        education=education,
        skills=skills,
    )
    # keep edits without resetting widgets
    st.session_state["cv"] = edited

    for action in actions:
        if action:
            apply_action(edited, action)
            break

    save_bar(edited)
    preview(edited)


def save_bar(cv: CVData) -> None:
    client = get_client()
    name = st.session_state.get("cv_name") or "Untitled CV"
    template_id = st.session_state.get("template_id", "classic")

    if st.button("💾 Save CV", key="save_btn", type="primary"):
        try:
            if st.session_state.get("cv_id"):
                client.update_cv(st.session_state["cv_id"], cv_data=cv.to_wire(), template_id=template_id, name=name)
            else:
                record = client.create_cv(cv.to_wire(), template_id=template_id, name=name)
                st.session_state["cv_id"] = record["id"]
        except APIError as e:
            handle_api_error(e)
        else:
            flash("CV saved.")
            st.rerun()


def preview(cv: CVData) -> None:
    template_id = st.session_state.get("template_id", "classic")
    theme = THEMES.get(st.session_state.get("theme_name", ""), None)
    html = render_cv_html(cv, template_id, theme)

    st.subheader("Preview")
    components.html(html, height=900, scrolling=True)

    file_base = (st.session_state.get("cv_name") or "cv").strip().replace(" ", "_")
    c1, c2 = st.columns(2)
    c1.download_button(
        "Download DOCX",
        data=render_cv_docx_bytes(cv),
        file_name=f"{file_base}.docx",
        mime="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        key="dl_docx",
    )
    if c2.button("Prepare PDF", key="pdf_btn"):
        try:
            st.session_state["_pdf_bytes"] = render_cv_pdf_bytes(cv, template_id, theme)
        except RuntimeError as e:
            st.error(str(e))
    if st.session_state.get("_pdf_bytes"):
        c2.download_button(
            "Download PDF",
            data=st.session_state["_pdf_bytes"],
            file_name=f"{file_base}.pdf",
            mime="application/pdf",
            key="dl_pdf",
        )


# =========================
# Admin
# =========================
def admin_panel():
    client = get_client()

    try:
        overview = client.admin_overview()
    except APIError as e:
        handle_api_error(e)
        return

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Users", overview["total_users"], f"+{overview['new_users']} in {overview['days']}d")
    c2.metric("Active users", overview["active_users"])
    c3.metric("CVs", overview["total_cvs"])
    c4.metric("AI generations", overview["ai_generations"])

    ga = overview.get("ga") or {}
    if ga.get("propertyId"):
        st.caption(f"GA property {ga['propertyId']} (from {ga['source']})")
    else:
        st.caption("No GA property configured.")

    st.subheader("Users")
    try:
        users = client.admin_users()
    except APIError as e:
        handle_api_error(e)
        users = []

    for u in users:
        c1, c2, c3 = st.columns([3, 2, 1])
        c1.write(f"**{u['username']}** · {u['email']}" + (" · admin" if u["is_admin"] else ""))
        c2.write(f"AI: {u['ai_generations']} · saves: {u['cv_saves']}")
        label = "Deactivate" if u["is_active"] else "Activate"
        if c3.button(label, key=f"adm_toggle_{u['id']}"):
            try:
                client.admin_toggle_active(u["id"])
            except APIError as e:
                handle_api_error(e)
            else:
                st.rerun()

    st.subheader("Google Analytics")
    try:
        ga_settings = client.admin_ga_settings()
    except APIError as e:
        handle_api_error(e)
        return

    measurement_id = st.text_input("Measurement ID", value=ga_settings.get("measurementId", ""), key="adm_ga_mid")
    property_id = st.text_input("Property ID", value=ga_settings.get("propertyId", ""), key="adm_ga_pid")
    if st.button("Save GA settings", key="adm_ga_save"):
        try:
            client.save_admin_ga_settings(measurement_id, property_id)
        except APIError as e:
            handle_api_error(e)
        else:
            st.success("GA settings saved.")


# =========================
# Main
# =========================
def main():
    st.title("📄 CV Builder")

    try:
        get_client()
    except APIConfigError as e:
        st.error(str(e))
        st.stop()

    show_flash()

    if not st.session_state.get("api_token"):
        auth_ui()
        return

    sidebar()

    if st.session_state["user"].get("is_admin"):
        tab_editor, tab_admin = st.tabs(["Editor", "Admin"])
        with tab_editor:
            editor()
        with tab_admin:
            admin_panel()
    else:
        editor()


main()
