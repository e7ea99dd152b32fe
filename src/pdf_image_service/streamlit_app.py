import io
import os

import requests
import streamlit as st

API_BASE = os.getenv("PDF_SERVICE_API_BASE", os.getenv("API_BASE", "http://localhost:8080")).rstrip("/")
REQUEST_TIMEOUT_SEC = float(os.getenv("PDF_SERVICE_UI_TIMEOUT", "300"))

FORMATS = {
    "png16m": "PNG, millions of colours (best quality)",
    "png256": "PNG, 256 colours",
    "png16": "PNG, 16 colours (smallest file size)",
    "pnggray": "PNG, 8-bit grayscale",
    "jpeg": "JPEG (configurable quality)",
    "tifflzw": "TIFF with LZW compression",
}


def _reset_state():
    for key in ["result", "error"]:
        if key in st.session_state:
            del st.session_state[key]
    # Bump the uploader key to clear any previously uploaded file widget state
    st.session_state["upload_key"] = st.session_state.get("upload_key", 0) + 1


def _error_message(resp: requests.Response) -> str:
    try:
        detail = resp.json().get("detail", {})
    except ValueError:
        return f"{resp.status_code} {resp.text}"
    if isinstance(detail, dict):
        return f"{resp.status_code} {detail.get('code', '')}: {detail.get('message', '')}"
    return f"{resp.status_code} {detail}"


def _convert(uploaded_file: io.BytesIO, params: dict[str, str]) -> dict[str, object] | None:
    try:
        files = {"file": (uploaded_file.name, uploaded_file.getvalue(), "application/pdf")}
        resp = requests.post(
            f"{API_BASE}/api/v1/pdf/convert-to-image",
            files=files,
            data=params,
            timeout=REQUEST_TIMEOUT_SEC,
        )
    except requests.RequestException as e:
        st.session_state["error"] = f"Failed to connect to API: {e}"
        return None
    if resp.status_code != 200:
        st.session_state["error"] = f"Conversion failed: {_error_message(resp)}"
        return None
    media_type = resp.headers.get("content-type", "application/octet-stream").split(";")[0]
    return {"data": resp.content, "media_type": media_type}


def main() -> None:
    st.set_page_config(page_title="PDF Image Service", page_icon="🖼️", layout="centered")
    st.title("🖼️ PDF to Image")
    st.caption(f"API base: {API_BASE}")

    if st.button("Restart", type="secondary"):
        _reset_state()
        st.rerun()

    if "upload_key" not in st.session_state:
        st.session_state["upload_key"] = 0
    uploaded = st.file_uploader(
        "Upload a PDF",
        type=["pdf"],
        key=f"uploader-{st.session_state['upload_key']}",
    )

    col1, col2 = st.columns(2)
    with col1:
        start_page = st.number_input("First page (0-based)", min_value=0, value=0, step=1)
        single_file = st.checkbox("Combine pages into one image", value=True)
        dpi = st.slider("DPI", min_value=72, max_value=600, value=150, step=6)
    with col2:
        end_page = st.number_input("Last page (0 = last page)", min_value=0, value=0, step=1)
        output_format = st.selectbox("Output format", list(FORMATS), format_func=lambda k: FORMATS[k])
        quality = st.slider("JPEG quality", min_value=1, max_value=100, value=90)
    background = st.color_picker("Background colour", "#FFFFFF")

    if uploaded and st.button("Convert", type="primary"):
        params = {
            "startPage": str(int(start_page)),
            "endPage": str(int(end_page)),
            "singleFile": "true" if single_file else "false",
            "outputFormat": output_format,
            "dpi": str(dpi),
            "quality": str(quality),
            "backgroundColor": background,
        }
        st.session_state.pop("error", None)
        with st.spinner("Converting..."):
            result = _convert(uploaded, params)
        if result:
            st.session_state["result"] = result

    if result := st.session_state.get("result"):
        st.success("Conversion complete!")
        media_type = str(result["media_type"])
        if media_type == "application/zip":
            file_name = "converted-pages.zip"
        else:
            file_name = f"converted.{media_type.split('/')[-1]}"
        st.download_button(
            label=f"Download {file_name}",
            data=result["data"],
            file_name=file_name,
            mime=media_type,
        )
        if media_type in {"image/png", "image/jpeg"}:
            with st.expander("Preview"):
                st.image(result["data"])

    if err := st.session_state.get("error"):
        st.error(err)


if __name__ == "__main__":
    main()
