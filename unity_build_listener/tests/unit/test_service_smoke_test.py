import sys

from unity_build_listener.service_smoke_test import default_listener_command, run_smoke_test


def fake_listener(stop_file, honour_stop=True, exit_code=0):
    if honour_stop:
        code = (
            "import os, sys, time\n"
            f"while not os.path.exists({str(stop_file)!r}):\n"
            "    time.sleep(0.05)\n"
            f"sys.exit({exit_code})\n"
        )
    else:
        code = "import time\ntime.sleep(30)\n"
    return [sys.executable, "-c", code]


def test_graceful_stop_passes(tmp_path):
    stop_file = tmp_path / "stop_listener.flag"

    passed = run_smoke_test(
        stop_file, command=fake_listener(stop_file), warmup_seconds=0.3, stop_timeout=10, stderr_log=tmp_path / "stderr.log"
    )

    assert passed
    assert not stop_file.exists()


def test_stale_stop_file_removed_before_launch(tmp_path):
    stop_file = tmp_path / "stop_listener.flag"
    stop_file.touch()

    passed = run_smoke_test(
        stop_file, command=fake_listener(stop_file), warmup_seconds=0.3, stop_timeout=10, stderr_log=tmp_path / "stderr.log"
    )

    assert passed


def test_exit_during_warmup_fails(tmp_path):
    stop_file = tmp_path / "stop_listener.flag"
    command = [sys.executable, "-c", "import sys; sys.exit(1)"]

    passed = run_smoke_test(stop_file, command=command, warmup_seconds=1.0, stop_timeout=5, stderr_log=tmp_path / "stderr.log")

    assert not passed
    assert not stop_file.exists()


def test_nonzero_exit_after_stop_fails(tmp_path):
    stop_file = tmp_path / "stop_listener.flag"

    passed = run_smoke_test(
        stop_file,
        command=fake_listener(stop_file, exit_code=2),
        warmup_seconds=0.3,
        stop_timeout=10,
        stderr_log=tmp_path / "stderr.log",
    )

    assert not passed


def test_listener_ignoring_stop_file_is_terminated(tmp_path):
    stop_file = tmp_path / "stop_listener.flag"

    passed = run_smoke_test(
        stop_file,
        command=fake_listener(stop_file, honour_stop=False),
        warmup_seconds=0.3,
        stop_timeout=0.5,
        stderr_log=tmp_path / "stderr.log",
    )

    assert not passed
    assert not stop_file.exists()


def test_unlaunchable_command_fails(tmp_path):
    passed = run_smoke_test(
        tmp_path / "stop.flag", command=[str(tmp_path / "missing-binary")], warmup_seconds=0, stderr_log=tmp_path / "stderr.log"
    )

    assert not passed


def test_default_command_runs_listener_module():
    assert default_listener_command()[1:] == ["-m", "unity_build_listener.listener"]
