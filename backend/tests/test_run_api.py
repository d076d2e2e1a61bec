from __future__ import annotations

import importlib.util
from pathlib import Path

import pytest


SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "run_api.py"


@pytest.fixture
def run_api(monkeypatch: pytest.MonkeyPatch):
    for name in ("UVICORN_HOST", "UVICORN_PORT", "UVICORN_RELOAD", "UVICORN_WORKERS"):
        monkeypatch.delenv(name, raising=False)
    # main() writes these; setting them here makes monkeypatch restore them afterwards.
    monkeypatch.setenv("MEDIA_ROOT", "public")
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    spec = importlib.util.spec_from_file_location("run_api", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    calls: list[tuple[str, dict]] = []
    monkeypatch.setattr(module.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    module.calls = calls
    return module


def test_flags_reach_uvicorn(run_api, tmp_path: Path):
    run_api.main(["--port", "9001", "--no-reload", "--workers", "3", "--media-root", str(tmp_path)])

    app, kwargs = run_api.calls[0]
    assert app == "veostudio.api:app"
    assert kwargs["port"] == 9001
    assert kwargs["reload"] is False
    assert kwargs["workers"] == 3
    assert run_api.os.environ["MEDIA_ROOT"] == str(tmp_path)


def test_reload_forces_single_worker(run_api, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("UVICORN_WORKERS", "4")

    run_api.main(["--log-level", "debug"])

    _, kwargs = run_api.calls[0]
    assert kwargs["reload"] is True
    assert kwargs["workers"] == 1
    assert kwargs["log_level"] == "debug"
