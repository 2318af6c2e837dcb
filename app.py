"""
GradeMate - Grade Analysis Agent
Streamlit Web Application

Entry point for the chat interface. Students import their transcript,
pick a model and ask questions; the agent answers by calling analytic
tools over the imported grades.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import streamlit as st

from config import LOG_LEVEL

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Import services
try:
    from ai import ChatCompletionClient, TransportError, pick_default_model
    from config import (
        AgentSettings,
        APP_TITLE,
        APP_SUBTITLE,
        PAGE_ICON,
        MAX_UPLOAD_SIZE_MB,
        SUPPORTED_TRANSCRIPT_EXTENSIONS,
    )
    from core import StreamUpdate, TranscriptEntry, project_display
    from services import Course, aggregate_courses, build_default_multiplier, build_snapshot
    from services.chat_service import ChatService, ChatResponse
    from clients import read_transcript_rows
    from utils import format_term_label, reset_rule_state, rule_widget_key, tool_card_html
except ImportError as e:
    st.error(f"❌ Failed to import required modules: {e}")
    st.stop()

# ============================================================================
# PAGE CONFIGURATION
# ============================================================================

st.set_page_config(
    page_title=APP_TITLE,
    page_icon=PAGE_ICON,
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .block-container {
        padding-top: 2rem;
        padding-bottom: 2rem;
    }

    /* ===== Tool call / result cards ===== */
    .tool-card {
        background: #F8F9FA;
        border-left: 4px solid #5B2C9F;
        border-radius: 12px;
        padding: 10px 14px;
        margin: 8px 0;
        font-size: 13px;
    }

    .tool-card.result {
        border-left-color: #34A853;
    }

    .stream-hint {
        color: #6C757D;
        font-style: italic;
    }

    #MainMenu {visibility: hidden;}
    footer {visibility: hidden;}
</style>
""", unsafe_allow_html=True)

RULE_LABELS = {
    "multiplier": "×1.2 课程",
    "elective": "通识公选课",
    "first_fail": "首次不及格",
    "expansion": "拓展课程组",
}

# ============================================================================
# SESSION STATE INITIALIZATION
# ============================================================================

def initialize_session_state():
    """Initialize Streamlit session state variables."""

    if "settings" not in st.session_state:
        st.session_state.settings = AgentSettings.from_env()

    if "chat_service" not in st.session_state:
        st.session_state.chat_service = ChatService(st.session_state.settings)

    if "courses" not in st.session_state:
        st.session_state.courses = []

    if "rules" not in st.session_state:
        st.session_state.rules = {rule: {} for rule in RULE_LABELS}

    if "models" not in st.session_state:
        st.session_state.models = []

    if "last_error" not in st.session_state:
        st.session_state.last_error = ""


def course_label(course: Course) -> str:
    return f"{course.name}（{format_term_label(course.year, course.term)}）"


# ============================================================================
# TRANSCRIPT IMPORT
# ============================================================================

def load_transcript_rows(uploaded_file) -> Optional[List[Dict[str, Any]]]:
    """
    Read an uploaded .xlsx or .csv transcript into row dicts keyed by column header.

    Returns:
        Rows, or None if the file is rejected
    """
    if not uploaded_file:
        return None

    try:
        return read_transcript_rows(
            uploaded_file.name,
            uploaded_file.getvalue(),
            max_bytes=MAX_UPLOAD_SIZE_MB * 1024 * 1024,
        )
    except ValueError as e:
        logger.warning(f"⚠️  Transcript rejected: {e}")
        st.error(f"❌ 无法读取成绩单（支持 {', '.join(SUPPORTED_TRANSCRIPT_EXTENSIONS)}，不超过 {MAX_UPLOAD_SIZE_MB} MB）")
        return None


def handle_transcript_upload(uploaded_file):
    rows = load_transcript_rows(uploaded_file)
    if rows is None:
        return

    courses = aggregate_courses(rows)
    if not courses:
        st.error("❌ 未识别到课程，请检查表头是否为 学年/学期/课程名称/学分/成绩分项/成绩")
        return

    st.session_state.courses = courses
    reset_rule_state(st.session_state, RULE_LABELS, build_default_multiplier(courses))
    logger.info(f"📥 Imported {len(courses)} courses from {uploaded_file.name}")
    st.success(f"✅ 已导入 {len(courses)} 门课程")


def current_snapshot():
    settings: AgentSettings = st.session_state.settings
    return build_snapshot(
        st.session_state.courses,
        st.session_state.rules,
        use_filter=settings.use_filter,
        use_multiplier=settings.use_multiplier,
    )


# ============================================================================
# SIDEBAR
# ============================================================================

def refresh_models(settings: AgentSettings):
    try:
        models = ChatCompletionClient(settings).list_models()
    except TransportError as e:
        logger.warning(f"⚠️  Model list unavailable: {e}")
        st.session_state.models = []
        st.sidebar.error("获取模型列表失败，可手动输入模型名")
        return
    st.session_state.models = models
    st.session_state.settings = settings.with_overrides(
        model=pick_default_model(models, settings.model)
    )


def render_rule_editor():
    courses: List[Course] = st.session_state.courses
    if not courses:
        return

    labels = {course.key: course_label(course) for course in courses}
    with st.expander("⚙️ 课程规则", expanded=False):
        for rule, title in RULE_LABELS.items():
            selected = [key for key, on in st.session_state.rules[rule].items() if on and key in labels]
            chosen = st.multiselect(
                title,
                options=list(labels),
                default=selected,
                format_func=labels.get,
                key=rule_widget_key(rule),
            )
            st.session_state.rules[rule] = {key: key in chosen for key in labels}


def render_sidebar():
    """Render sidebar with credentials, model, toggles and import."""

    with st.sidebar:
        st.markdown(f"## {APP_TITLE}")
        st.caption(APP_SUBTITLE)

        settings: AgentSettings = st.session_state.settings

        api_key = st.text_input("SiliconFlow API Key", value=settings.api_key, type="password")
        if api_key != settings.api_key:
            settings = settings.with_overrides(api_key=api_key)
            st.session_state.settings = settings

        if st.button("🔄 获取模型", use_container_width=True, disabled=not api_key.strip()):
            refresh_models(settings)
            settings = st.session_state.settings

        if st.session_state.models:
            models = st.session_state.models
            index = models.index(settings.model) if settings.model in models else 0
            model = st.selectbox("模型", models, index=index)
        else:
            model = st.text_input("模型名", value=settings.model, placeholder="列表拉取失败可手动输入")

        use_filter = st.toggle("加权筛选", value=settings.use_filter)
        use_multiplier = st.toggle("加权倍率 ×1.2", value=settings.use_multiplier)
        note = st.text_area("补充说明", value=settings.note, placeholder="例如：我想保研，关注专业课")

        st.session_state.settings = settings.with_overrides(
            model=model,
            use_filter=use_filter,
            use_multiplier=use_multiplier,
            note=note,
        )

        st.markdown("---")
        uploaded_file = st.file_uploader(
            "📄 导入成绩单 (Excel / CSV)",
            type=[ext.lstrip(".") for ext in SUPPORTED_TRANSCRIPT_EXTENSIONS],
        )
        if uploaded_file and st.session_state.get("uploaded_name") != uploaded_file.name:
            st.session_state.uploaded_name = uploaded_file.name
            handle_transcript_upload(uploaded_file)

        render_rule_editor()

        if st.session_state.courses:
            stats = current_snapshot().stats
            col1, col2 = st.columns(2)
            col1.metric("加权平均分", f"{stats.avg_score:.2f}")
            col2.metric("平均绩点", f"{stats.avg_gpa:.2f}")

        st.markdown("---")
        if st.button("🗑️ 清空对话", use_container_width=True):
            st.session_state.chat_service.reset()
            st.session_state.last_error = ""
            st.rerun()


# ============================================================================
# CHAT
# ============================================================================

def render_entry(entry: TranscriptEntry):
    """Render one transcript entry."""
    if entry.role == "user":
        with st.chat_message("user", avatar="👤"):
            st.markdown(entry.content)
    elif entry.role == "assistant":
        with st.chat_message("assistant", avatar="🎓"):
            st.markdown(entry.content)
    elif entry.is_tool_call:
        st.markdown(
            tool_card_html(entry.tool),
            unsafe_allow_html=True,
        )
        with st.expander("参数", expanded=False):
            st.code(json.dumps(entry.payload, ensure_ascii=False, indent=2), language="json")
    elif entry.is_tool_result:
        st.markdown(
            tool_card_html(entry.tool, result=True),
            unsafe_allow_html=True,
        )
        with st.expander("结果", expanded=False):
            st.code(json.dumps(entry.payload, ensure_ascii=False, indent=2), language="json")


def handle_user_input(question: str):
    """Send a question and stream the answer into a placeholder."""
    service: ChatService = st.session_state.chat_service
    service.update_settings(st.session_state.settings)
    service.update_snapshot(current_snapshot() if st.session_state.courses else None)
    st.session_state.last_error = ""

    with st.chat_message("user", avatar="👤"):
        st.markdown(question)

    with st.chat_message("assistant", avatar="🎓"):
        placeholder = st.empty()

        def on_update(update: StreamUpdate):
            if update.visible:
                placeholder.markdown(update.text)
            else:
                placeholder.markdown(f"<span class='stream-hint'>{update.text}</span>", unsafe_allow_html=True)

        response: ChatResponse = service.process_message(question, on_update=on_update)

    if not response.success and response.message:
        st.session_state.last_error = response.message
    elif response.success:
        logger.info(f"✅ Answered with tools: {response.metadata.get('tools_used')}")


# ============================================================================
# MAIN APP
# ============================================================================

def main():
    """Main application entry point."""

    initialize_session_state()
    render_sidebar()

    st.title(APP_TITLE)
    st.markdown(f"#### {APP_SUBTITLE}")

    service: ChatService = st.session_state.chat_service
    for entry in project_display(service.transcript):
        render_entry(entry)

    if st.session_state.last_error:
        st.error(st.session_state.last_error)

    # Quick prompts
    pending: Optional[str] = None
    prompts = service.quick_prompts()
    cols = st.columns(len(prompts))
    for col, prompt in zip(cols, prompts):
        with col:
            if st.button(prompt["label"], key=f"quick_{prompt['id']}", use_container_width=True):
                pending = prompt["prompt"]

    user_input = st.chat_input("输入你的问题...", key="chat_input")
    question = user_input or pending

    if question:
        handle_user_input(question)
        st.rerun()


# ============================================================================
# ERROR HANDLING & ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        logger.error(f"Application error: {e}", exc_info=True)
        st.error(f"❌ **Application Error**\n\n{e}")
