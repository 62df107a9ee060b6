"""Gradio UI wrapper for the colstats pipeline.

Upload a CSV, pick a column, and see median/min/max next to a scatter plot of the
column against row order.
"""

import html
import os
from typing import Optional

try:
    from .main import (
        MessageLevel,
        Session,
        ValidationMode,
        get_default_params,
    )
except Exception:
    from main import (  # type: ignore
        MessageLevel,
        Session,
        ValidationMode,
        get_default_params,
    )

import logging

import gradio as gr

logger = logging.getLogger(__name__)

_PAGE_STYLE = """
<style>
  .message { padding: 8px 12px; border-radius: 4px; min-height: 1.5em; }
  .message.info { background: #eef4fb; color: #1f4e79; }
  .message.success { background: #e8f6ec; color: #1e6b34; }
  .message.error { background: #fdecea; color: #8a1c12; }
  #chart svg { width: 100%; height: auto; }
</style>
"""


def _default_mode() -> ValidationMode:
    raw = os.getenv("COLSTATS_MODE", ValidationMode.FLEXIBLE.name)
    try:
        return ValidationMode[raw.strip().upper()]
    except KeyError:
        logger.warning(f"Unknown COLSTATS_MODE {raw!r}; using FLEXIBLE")
        return ValidationMode.FLEXIBLE


def _parse_optional_int(val) -> Optional[int]:
    if val is None:
        return None
    try:
        s = val
        if isinstance(val, str):
            s = val.strip()
            if s == "":
                return None
        return int(float(s))
    except (TypeError, ValueError):
        return None


def _file_path(file_obj) -> Optional[str]:
    # gr.File returns a path string, a dict with "name"/"path", or a tempfile wrapper
    if file_obj is None:
        return None
    if isinstance(file_obj, str):
        return file_obj
    if isinstance(file_obj, dict):
        return file_obj.get("path") or file_obj.get("name")
    return getattr(file_obj, "path", None) or getattr(file_obj, "name", None)


def _media_type(file_obj) -> Optional[str]:
    if isinstance(file_obj, dict):
        return file_obj.get("mime_type")
    return getattr(file_obj, "mime_type", None)


def _ensure_session(session: Optional[Session], mode: ValidationMode) -> Session:
    """Reuse the session unless the mode changed; a replaced session releases its chart."""
    if session is not None and session.mode is mode:
        return session
    if session is not None:
        session.close()
    extract, plot = get_default_params(mode)
    return Session(extract, plot)


def _message_html(level: MessageLevel, message: str) -> str:
    return f'<div class="message {level.value}">{html.escape(message)}</div>'


def _outputs(session: Session):
    d = session.display
    dropdown = gr.update(
        choices=d.column_options,
        value=d.selected_column,
        visible=session.mode is ValidationMode.FLEXIBLE,
    )
    return (
        session,
        dropdown,
        _message_html(d.level, d.message),
        d.median,
        d.min,
        d.max,
        session.chart_svg() or "",
    )


def _on_file_selected(file_obj, mode_name: Optional[str], session: Optional[Session]):
    try:
        mode = ValidationMode[mode_name] if mode_name else _default_mode()
    except KeyError:
        mode = _default_mode()
    session = _ensure_session(session, mode)
    logger.info(f"file selected: {_file_path(file_obj)!r} (mode={mode.name})")
    session.handle_file_selected(_file_path(file_obj), _media_type(file_obj))
    return _outputs(session)


def _on_column_changed(column_value, session: Optional[Session]):
    session = _ensure_session(session, _default_mode() if session is None else session.mode)
    session.handle_column_changed(_parse_optional_int(column_value))
    return _outputs(session)


def _build_ui():
    mode = _default_mode()
    with gr.Blocks() as demo:
        gr.Markdown("### CSV Column Statistics")
        gr.HTML(_PAGE_STYLE)
        session_state = gr.State(None)
        with gr.Row():
            file_input = gr.File(
                label="Upload CSV file", file_types=[".csv"], type="filepath"
            )
            mode_input = gr.Radio(
                label="Mode",
                choices=[m.name for m in ValidationMode],
                value=mode.name,
            )
        column_input = gr.Dropdown(
            label="Column",
            choices=[],
            value=None,
            interactive=True,
            visible=mode is ValidationMode.FLEXIBLE,
        )
        message_html = gr.HTML(_message_html(MessageLevel.INFO, ""))
        with gr.Row():
            median_box = gr.Textbox(label="Median", value="-", interactive=False)
            min_box = gr.Textbox(label="Min", value="-", interactive=False)
            max_box = gr.Textbox(label="Max", value="-", interactive=False)
        chart_html = gr.HTML(elem_id="chart")

        outputs = [
            session_state,
            column_input,
            message_html,
            median_box,
            min_box,
            max_box,
            chart_html,
        ]
        file_input.change(
            _on_file_selected,
            inputs=[file_input, mode_input, session_state],
            outputs=outputs,
        )
        mode_input.change(
            _on_file_selected,
            inputs=[file_input, mode_input, session_state],
            outputs=outputs,
        )
        # .input fires on user selection only, not when the file handler updates the value
        column_input.input(
            _on_column_changed,
            inputs=[column_input, session_state],
            outputs=outputs,
        )

    return demo


if __name__ == "__main__":
    demo = _build_ui()
    demo.launch()
