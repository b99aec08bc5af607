import socket
import subprocess
import sys
import time
from pathlib import Path

import pyarrow.parquet as pq
import pytest
from click.testing import CliRunner

from telemon_server import cli as server_cli

REPO = Path(__file__).resolve().parents[1]


def run(args, timeout=30):
    return subprocess.run([sys.executable, *args], cwd=REPO, check=False,
                          capture_output=True, text=True, timeout=timeout)


def free_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.mark.parametrize("device_id", ["0", "6", "abc"])
def test_device_rejects_invalid_id(device_id):
    r = run(["-m", "telemon_device.cli", device_id, "--port", str(free_port())])
    assert r.returncode != 0
    assert "FATAL" in r.stderr
    assert "connected" not in r.stderr


def test_device_requires_an_id():
    r = run(["-m", "telemon_device.cli"])
    assert r.returncode != 0


def test_server_exits_on_idle_timeout():
    r = run(["-m", "telemon_server.cli", "--port", "0", "--wait-timeout", "0.2"])
    assert r.returncode == 1
    assert "timeout" in r.stderr.lower()


def test_server_bind_failure_exits_nonzero():
    with socket.socket() as holder:
        holder.bind(("127.0.0.1", 0))
        holder.listen(1)
        port = holder.getsockname()[1]
        r = run(["-m", "telemon_server.cli", "--port", str(port), "--wait-timeout", "1"])
    assert r.returncode == 1
    assert "FATAL" in r.stderr


def wait_listening(port: int, timeout: float = 10.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            socket.create_connection(("127.0.0.1", port), timeout=0.5).close()
            return
        except OSError:
            time.sleep(0.05)
    raise AssertionError("server did not start")


def test_end_to_end_capture_and_export(tmp_path):
    port = free_port()
    capture = tmp_path / "frames.tmc"
    srv = subprocess.Popen(
        [sys.executable, "-m", "telemon_server.cli", "--port", str(port),
         "--wait-timeout", "2", "--capture", str(capture)],
        cwd=REPO, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True,
    )
    try:
        wait_listening(port)
        dev = run(["-m", "telemon_device.cli", "1", "--port", str(port),
                   "--count", "3", "--cadence", "0.1", "--seed", "3"])
        assert dev.returncode == 0, dev.stderr
        assert dev.stderr.count("response code: 200") == 3

        # Idle timeout ends the server with a non-zero status.
        _, err = srv.communicate(timeout=20)
        assert srv.returncode == 1
        assert "total messages from device_1: 3" in err
    finally:
        if srv.poll() is None:
            srv.kill()
            srv.communicate()

    out = tmp_path / "frames.parquet"
    r = run(["-m", "telemon_server.export", str(capture), str(out)])
    assert r.returncode == 0, r.stderr
    assert "device 1: 3" in r.stdout

    table = pq.read_table(out).to_pandas()
    assert list(table["device_id"]) == [1, 1, 1]
    assert list(table["seq"]) == [0, 1, 2]
    assert set(table["device_name"]) == {"device_1"}


def test_fleet_of_devices(server_thread):
    port = server_thread.server.address[1]
    r = run(["tools/run_fleet.py", "1", "2", "3", "--count", "3",
             "--cadence", "0.1", "--port", str(port)])
    assert r.returncode == 0, r.stderr
    server_thread.shutdown()

    assert server_thread.server.counters == {1: 3, 2: 3, 3: 3}
    assert server_thread.server.total_received == 9


@pytest.mark.parametrize("value, expected_ms", [("0.0001", 1), ("0.2", 200), ("180", 180000), ("0", 0)])
def test_wait_timeout_option_never_rounds_to_forever(monkeypatch, value, expected_ms):
    seen = {}

    def fake_serve(config, capture_path=None):
        seen["wait_timeout_ms"] = config.wait_timeout_ms

    monkeypatch.setattr(server_cli, "serve", fake_serve)
    result = CliRunner().invoke(server_cli.main, ["--wait-timeout", value])
    assert result.exit_code == 0, result.output
    assert seen["wait_timeout_ms"] == expected_ms
