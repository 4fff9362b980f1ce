import os
import re
import time

import requests
import streamlit as st

API_BASE = os.getenv("HTML_PDF_API_BASE", os.getenv("API_BASE", "http://localhost:8080")).rstrip("/")
API_PREFIX = os.getenv("API_PREFIX", "").rstrip("/")
REQUEST_TIMEOUT = float(os.getenv("HTML_PDF_UI_TIMEOUT", "300"))

_FILENAME_RE = re.compile(r'filename="?([^";]+)"?')


def _reset_state():
    for key in ["pdf_bytes", "pdf_name", "error"]:
        if key in st.session_state:
            del st.session_state[key]
    # Bump the widget keys to clear the editor and the uploader
    st.session_state["form_key"] = st.session_state.get("form_key", 0) + 1


def _filename_from(headers: dict[str, str], default: str = "document.pdf") -> str:
    match = _FILENAME_RE.search(headers.get("content-disposition", "") or headers.get("Content-Disposition", ""))
    return match.group(1) if match else default


def _error_message(resp: requests.Response) -> str:
    try:
        detail = resp.json().get("detail")
    except ValueError:
        return resp.text
    if isinstance(detail, dict):
        return str(detail.get("message", detail))
    return str(detail)


def _convert(html: str) -> tuple[bytes, str] | None:
    """POST the HTML to the JSON entry. Retries transient 5xx and network errors."""
    url = f"{API_BASE}{API_PREFIX}/convert"
    max_attempts = 3
    backoff = 0.5
    for attempt in range(1, max_attempts + 1):
        try:
            resp = requests.post(url, json={"htmlContent": html}, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            if attempt < max_attempts:
                time.sleep(backoff)
                backoff *= 1.5
                continue
            st.session_state["error"] = f"Failed to connect to API: {e}"
            return None
        if resp.status_code == 200:
            return resp.content, _filename_from(dict(resp.headers))
        if resp.status_code in {502, 503, 504} and attempt < max_attempts:
            time.sleep(backoff)
            backoff *= 1.5
            continue
        st.session_state["error"] = f"Conversion failed: {resp.status_code} {_error_message(resp)}"
        return None
    return None


def main() -> None:
    st.set_page_config(page_title="HTML to PDF", page_icon="📄", layout="centered")
    st.title("📄 HTML to PDF")
    st.caption(f"API base: {API_BASE}{API_PREFIX}")

    if st.button("Restart", type="secondary"):
        _reset_state()
        st.rerun()

    form_key = st.session_state.get("form_key", 0)
    uploaded = st.file_uploader("Upload an HTML file", type=["html", "htm"], key=f"uploader-{form_key}")
    pasted = st.text_area("...or paste HTML", height=260, key=f"editor-{form_key}")

    html = ""
    if uploaded is not None:
        html = uploaded.getvalue().decode("utf-8-sig", "replace")
    elif pasted:
        html = pasted

    if st.button("Convert", type="primary", disabled=not html.strip()):
        st.session_state.pop("error", None)
        with st.spinner("Rendering PDF..."):
            res = _convert(html)
        if res:
            st.session_state["pdf_bytes"], st.session_state["pdf_name"] = res
            st.toast("PDF ready", icon="✅")

    if "pdf_bytes" in st.session_state:
        st.success(f"Conversion complete ({len(st.session_state['pdf_bytes'])} bytes)")
        st.download_button(
            label="Download PDF",
            data=st.session_state["pdf_bytes"],
            file_name=st.session_state["pdf_name"],
            mime="application/pdf",
        )

    if err := st.session_state.get("error"):
        st.error(err)


if __name__ == "__main__":
    main()
