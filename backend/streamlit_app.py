import json
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

import requests
import streamlit as st
from dotenv import load_dotenv

repo_env = Path(__file__).resolve().parents[1] / ".env"
if repo_env.exists():
    load_dotenv(dotenv_path=repo_env)
else:
    load_dotenv()

APP_TITLE = "Veo Studio"
DEFAULT_API_BASE = os.environ.get("PUBLIC_BASE_URL", "http://localhost:8000")
POLL_INTERVAL_SECONDS = float(os.environ.get("VIDEO_POLL_INTERVAL_SECONDS", "5"))

VEO_MODELS = {
    "veo-3.0-generate-preview": "Veo 3 (audio, 16:9)",
    "veo-3.0-fast-generate-preview": "Veo 3 Fast (audio, 16:9)",
    "veo-2.0-generate-001": "Veo 2 (16:9 or 9:16, up to 2 videos)",
}
STEP_TYPES = ["generate-image", "generate-video", "wait", "transform"]

STYLE = """
<style>
@import url('https://fonts.googleapis.com/css2?family=Fraunces:wght@500;600&family=Sora:wght@400;500;600&display=swap');

:root {
  --text: #1f2328;
  --muted: #5b6470;
  --border: #e4e1dc;
}

html, body, [class*="stApp"] {
  background: linear-gradient(180deg, #fbfaf7 0%, #f3f4f6 100%);
  color: var(--text);
  font-family: 'Sora', sans-serif;
}

h1, h2, h3, h4 {
  font-family: 'Fraunces', serif;
  color: var(--text);
}

.vs-top {
  padding: 0.4rem 0.2rem 1rem 0.2rem;
  border-bottom: 1px solid var(--border);
}

.vs-top h1 {
  margin: 0;
  font-size: 2rem;
}

.vs-top p {
  margin: 0.4rem 0 0 0;
  color: var(--muted);
}
</style>
"""


def init_state() -> None:
    defaults = {
        "project_id": "default",
        "user_id": "default-user",
        "messages": [],
        "pending_videos": {},
        "workflow_steps": [],
        "activity": [],
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def log_activity(message: str) -> None:
    st.session_state.activity.append({
        "time": datetime.now().strftime("%H:%M:%S"),
        "message": message,
    })


def api_base() -> str:
    return st.session_state.get("api_base", DEFAULT_API_BASE).rstrip("/")


def media_url(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    if path.startswith("http://") or path.startswith("https://"):
        return path
    return f"{api_base()}/{path.lstrip('/')}"


def api_request(method: str, path: str, payload: Optional[dict] = None, params: Optional[dict] = None) -> dict:
    url = f"{api_base()}{path}"
    response = requests.request(method, url, json=payload, params=params, timeout=600)
    if response.status_code >= 400:
        detail = response.text
        try:
            body = response.json()
            detail = body.get("message") or body.get("error") or detail
        except ValueError:
            pass
        raise RuntimeError(f"{response.status_code} {detail}")
    return response.json()


def scope_payload() -> dict:
    return {"projectId": st.session_state.project_id, "userId": st.session_state.user_id}


def scope_params() -> dict:
    return {"projectId": st.session_state.project_id, "userId": st.session_state.user_id}


def run_action(action_name: str, params: Optional[dict] = None) -> dict:
    payload = scope_payload()
    payload.update(actionName=action_name, params=params or {})
    data = api_request("POST", "/api/agent/action", payload)
    return data.get("result") or {}


def track_pending_videos(videos: list[dict]) -> None:
    for video in videos:
        operation_name = video.get("operationName")
        if operation_name:
            st.session_state.pending_videos[operation_name] = video.get("videoId")


def send_chat(message: str) -> None:
    st.session_state.messages.append({"role": "user", "content": message})
    payload = scope_payload()
    payload["message"] = message
    try:
        with st.spinner("Thinking..."):
            data = api_request("POST", "/api/agent/chat", payload)
    except Exception as exc:
        st.session_state.messages.append({"role": "assistant", "content": f"Error: {exc}"})
        return
    metadata = data.get("metadata") or {}
    st.session_state.messages.append({
        "role": "assistant",
        "content": data.get("message", ""),
        "images": metadata.get("images") or [],
        "videos": metadata.get("videos") or [],
    })
    track_pending_videos(metadata.get("videos") or [])
    log_activity(f"Chat: {len(data.get('actions') or [])} action(s)")


def poll_pending_videos() -> bool:
    """Poll every pending operation once. Returns True while any job is still running."""
    pending = dict(st.session_state.pending_videos)
    for operation_name, video_id in pending.items():
        try:
            result = run_action("check-video-status", {"operationName": operation_name})
        except Exception as exc:
            log_activity(f"Status check failed: {exc}")
            continue
        status = result.get("status")
        if status == "ready":
            st.session_state.pending_videos.pop(operation_name, None)
            st.session_state.messages.append({
                "role": "assistant",
                "content": result.get("message", "Video is ready!"),
                "videos": [{"videoId": video_id, "url": result.get("url")}],
            })
            log_activity(f"Video ready: {operation_name}")
        elif status == "failed" or not result.get("success"):
            st.session_state.pending_videos.pop(operation_name, None)
            st.session_state.messages.append({
                "role": "assistant",
                "content": result.get("message") or result.get("error") or "Video generation failed",
            })
            log_activity(f"Video failed: {operation_name}")
    return bool(st.session_state.pending_videos)


def render_message(message: dict) -> None:
    with st.chat_message(message["role"]):
        if message.get("content"):
            st.write(message["content"])
        for image in message.get("images") or []:
            url = media_url(image.get("url"))
            if url:
                st.image(url, caption=image.get("imageId"))
        for video in message.get("videos") or []:
            url = media_url(video.get("url"))
            if url:
                st.video(url)
            elif video.get("operationName"):
                st.caption(f"Generating... operation {video['operationName']}")


def render_media_tab() -> None:
    try:
        result = run_action("list-media", {"type": "all", "status": "all"})
    except Exception as exc:
        st.error(f"Failed to load media: {exc}")
        return
    st.caption(result.get("summary", ""))

    images = result.get("images") or []
    if images:
        st.markdown("**Images**")
        cols = st.columns(3)
        for index, image in enumerate(images):
            with cols[index % 3]:
                url = media_url(image.get("url"))
                if url:
                    st.image(url)
                st.caption(image.get("prompt", ""))
                if st.button("Animate", key=f"animate_{image['id']}"):
                    try:
                        started = run_action(
                            "generate-veo-video",
                            {"prompt": image.get("prompt", ""), "useImageId": image["id"]},
                        )
                        if started.get("success"):
                            track_pending_videos([started])
                            log_activity(started.get("message", "Video started"))
                        else:
                            st.error(started.get("message") or started.get("error"))
                    except Exception as exc:
                        st.error(f"Failed to start video: {exc}")

    videos = result.get("videos") or []
    if videos:
        st.markdown("**Videos**")
        for video in videos:
            st.markdown(f"`{video['status']}` {video.get('prompt', '')}")
            url = media_url(video.get("url"))
            if url and video["status"] == "ready":
                st.video(url)

    if not images and not videos:
        st.info("No media yet. Ask the agent for an image or a video.")

    with st.expander("Generate directly"):
        prompt = st.text_area("Prompt", key="direct_prompt", height=90)
        kind = st.radio("Type", ["Image", "Video"], horizontal=True, key="direct_kind")
        if kind == "Video":
            model = st.selectbox(
                "Model",
                list(VEO_MODELS),
                format_func=lambda name: VEO_MODELS[name],
                key="direct_model",
            )
            aspect_ratio = st.selectbox("Aspect ratio", ["16:9", "9:16"], key="direct_video_ratio")
            params = {"prompt": prompt, "model": model, "aspectRatio": aspect_ratio}
            action_name = "generate-veo-video"
        else:
            count = st.slider("Number of images", 1, 4, 1, key="direct_count")
            aspect_ratio = st.selectbox("Aspect ratio", ["1:1", "3:4", "4:3", "9:16", "16:9"], key="direct_image_ratio")
            params = {"prompt": prompt, "numberOfImages": count, "aspectRatio": aspect_ratio}
            action_name = "generate-imagen-image"

        if st.button("Generate", key="direct_generate", disabled=not prompt.strip()):
            try:
                result = run_action(action_name, params)
            except Exception as exc:
                st.error(f"Generation failed: {exc}")
            else:
                if result.get("success"):
                    if action_name == "generate-veo-video":
                        track_pending_videos([result])
                    log_activity(result.get("message", "Generated"))
                    st.rerun()
                else:
                    st.error(result.get("message") or result.get("error"))

    with st.expander("Danger zone"):
        if st.button("Clear project", key="clear_project"):
            try:
                api_request("DELETE", "/api/agent/memory", params=scope_params())
                st.session_state.pending_videos = {}
                log_activity("Project cleared")
                st.rerun()
            except Exception as exc:
                st.error(f"Failed to clear project: {exc}")


def render_workflow_tab() -> None:
    st.markdown("**Workflow builder**")
    name = st.text_input("Workflow name", key="workflow_name")
    step_type = st.selectbox("Step type", STEP_TYPES, key="workflow_step_type")
    if step_type == "wait":
        seconds = st.number_input("Seconds", min_value=0, value=5, key="workflow_wait")
        step_params = {"duration": int(seconds * 1000)}
    elif step_type == "transform":
        transform = st.selectbox("Transform", ["enhance", "resize", "filter"], key="workflow_transform")
        step_params = {"transformType": transform}
    else:
        step_prompt = st.text_input("Step prompt", key="workflow_step_prompt")
        step_params = {"prompt": step_prompt}

    if st.button("Add step", key="workflow_add_step"):
        st.session_state.workflow_steps.append({"type": step_type, "params": step_params})

    for index, step in enumerate(st.session_state.workflow_steps, start=1):
        st.caption(f"{index}. {step['type']} {json.dumps(step['params'])}")

    cols = st.columns(3)
    steps = st.session_state.workflow_steps
    with cols[0]:
        if st.button("Start workflow", disabled=not (name and steps)):
            payload = scope_payload()
            payload["workflow"] = {"name": name, "steps": steps}
            try:
                data = api_request("POST", "/api/agent/workflow", payload)
                st.success(data.get("message", "Workflow created"))
                st.session_state.workflow_steps = []
            except Exception as exc:
                st.error(f"Failed to start workflow: {exc}")
    with cols[1]:
        if st.button("Save as template", disabled=not (name and steps)):
            payload = scope_payload()
            payload["template"] = {"name": name, "steps": steps}
            try:
                data = api_request("PUT", "/api/agent/workflow", payload)
                st.success(data.get("message", "Template saved"))
            except Exception as exc:
                st.error(f"Failed to save template: {exc}")
    with cols[2]:
        if st.button("Clear steps"):
            st.session_state.workflow_steps = []
            st.rerun()

    try:
        data = api_request("GET", "/api/agent/workflow", params=scope_params())
    except Exception as exc:
        st.error(f"Failed to load workflows: {exc}")
        return
    st.markdown("**Active workflows**")
    for workflow in data.get("activeWorkflows") or []:
        st.markdown(f"- {workflow['name']} ({len(workflow['steps'])} steps)")
    st.markdown("**Templates**")
    for template in data.get("templates") or []:
        if st.button(f"Load {template['name']}", key=f"template_{template['name']}"):
            st.session_state.workflow_steps = [
                {"type": step["type"], "params": step.get("params") or {}} for step in template["steps"]
            ]
            st.rerun()


def render_memory_tab() -> None:
    try:
        data = api_request("GET", "/api/agent/memory", params=scope_params())
    except Exception as exc:
        st.error(f"Failed to load memory: {exc}")
        return
    contexts = data.get("contexts") or {}

    analytics = (contexts.get("analytics") or {}).get("memory") or {}
    costs = analytics.get("costs") or {}
    performance = analytics.get("performance") or {}
    metric_cols = st.columns(4)
    metric_cols[0].metric("Videos", costs.get("totalVideos", 0))
    metric_cols[1].metric("Images", costs.get("totalImages", 0))
    metric_cols[2].metric("Est. cost", f"${costs.get('estimatedCost', 0) / 100:.2f}")
    metric_cols[3].metric("Avg video time", f"{performance.get('averageVideoTime', 0):.0f}s")

    for label, key in [("Project", "project"), ("Preferences", "preferences"), ("Media library", "mediaLibrary")]:
        with st.expander(label):
            st.json((contexts.get(key) or {}).get("memory") or {})

    if st.button("Reset analytics", key="reset_analytics"):
        try:
            params = scope_params()
            params["context"] = "analytics"
            api_request("DELETE", "/api/agent/memory", params=params)
            st.rerun()
        except Exception as exc:
            st.error(f"Failed to reset analytics: {exc}")


st.set_page_config(page_title=APP_TITLE, layout="wide")
st.markdown(STYLE, unsafe_allow_html=True)
init_state()

st.markdown(
    "<div class='vs-top'><h1>Veo Studio</h1>"
    "<p>Chat with the agent to generate Veo videos and Imagen stills.</p></div>",
    unsafe_allow_html=True,
)

with st.sidebar:
    st.subheader("Connection")
    st.session_state.api_base = st.text_input("API base URL", value=api_base())
    try:
        health = api_request("GET", "/health")
        api_ok = health.get("status") == "ok"
    except Exception:
        api_ok = False
    if api_ok:
        st.success("API: healthy")
    else:
        st.error("API: unreachable")

    st.subheader("Project")
    st.session_state.project_id = st.text_input("Project ID", value=st.session_state.project_id)
    st.session_state.user_id = st.text_input("User ID", value=st.session_state.user_id)

    st.subheader("Activity")
    for item in st.session_state.activity[-8:]:
        st.caption(f"{item['time']} {item['message']}")

main_cols = st.columns([1, 2])

with main_cols[0]:
    st.markdown("**Chat**")
    chat_box = st.container(height=600)
    with chat_box:
        for message in st.session_state.messages:
            render_message(message)

    user_prompt = st.chat_input("Ask for a video or an image")
    if user_prompt:
        send_chat(user_prompt)
        st.rerun()

with main_cols[1]:
    tab_media, tab_workflows, tab_memory = st.tabs(["Media", "Workflows", "Memory"])
    with tab_media:
        render_media_tab()
    with tab_workflows:
        render_workflow_tab()
    with tab_memory:
        render_memory_tab()

if st.session_state.pending_videos and api_ok:
    with main_cols[0]:
        st.caption(f"Waiting on {len(st.session_state.pending_videos)} video job(s)...")
    time.sleep(POLL_INTERVAL_SECONDS)
    poll_pending_videos()
    st.rerun()
