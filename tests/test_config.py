import os
import threading
import time
from pathlib import Path

from cliptrail.config import AppConfig
from cliptrail.main import build_config, parse_args
from cliptrail.services.scheduler import PeriodicTask


def clear_env(monkeypatch):
    for name in ("CLIPTRAIL_DATA_DIR", "CLIPTRAIL_USE_REDIS", "CLIPTRAIL_API_HOST",
                 "CLIPTRAIL_API_PORT", "REDIS_URI", "REDIS_HOST", "REDIS_PORT"):
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    config = AppConfig.from_env(env_path=tmp_path / "missing.env")
    assert config.data_dir == Path.home() / ".cliptrail"
    assert config.image_dir == config.data_dir / "images"
    assert config.use_redis is True
    assert (config.api_host, config.api_port) == ("127.0.0.1", 3001)


def test_env_file_is_read(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    env_file = tmp_path / ".env"
    env_file.write_text(
        f"CLIPTRAIL_DATA_DIR={tmp_path / 'data'}\n"
        "CLIPTRAIL_USE_REDIS=no\n"
        "CLIPTRAIL_API_PORT=4000\n"
    )
    try:
        config = AppConfig.from_env(env_path=env_file)
    finally:
        for name in ("CLIPTRAIL_DATA_DIR", "CLIPTRAIL_USE_REDIS", "CLIPTRAIL_API_PORT"):
            os.environ.pop(name, None)
    assert config.data_dir == tmp_path / "data"
    assert config.use_redis is False
    assert config.api_port == 4000


def test_command_line_overrides(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    monkeypatch.setattr(AppConfig, "from_env", classmethod(lambda cls, env_path=None: cls()))
    args = parse_args(["--data-dir", str(tmp_path), "--no-redis", "--api-port", "5005",
                       "-m", "7", "-i", "0.5"])
    config = build_config(args)
    assert config.data_dir == tmp_path
    assert config.use_redis is False
    assert config.api_port == 5005
    assert (args.max_history, args.poll_interval, args.api) == (7, 0.5, False)


def test_periodic_task_runs_until_stopped():
    ran = threading.Event()
    calls = []

    def work():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first run fails")
        ran.set()

    task = PeriodicTask("test-task", work, 0.01)
    task.start()
    assert ran.wait(timeout=2.0)
    task.stop()
    task.stop()
    assert not task.is_running
    count = len(calls)
    time.sleep(0.05)
    assert len(calls) == count
