import pyarrow.parquet as pq
import pytest
from click.testing import CliRunner

from telemon_core.errors import CaptureError
from telemon_core.records import TelemetryFrame, encode_frame
from telemon_server.capture import CaptureWriter, capture_to_frame, device_counts, export_capture, scan_capture
from telemon_server.export import main as export_main


def write_capture(path, frames):
    with CaptureWriter(path) as w:
        for i, (did, data) in enumerate(frames):
            w.append(encode_frame(TelemetryFrame(did, f"device_{did}", data)), received_at=1000.0 + i)


def test_scan_returns_frames_in_order(tmp_path):
    path = tmp_path / "c.tmc"
    write_capture(path, [(1, 10), (2, 20), (1, 30)])

    rows = list(scan_capture(path))
    assert [r["seq"] for r in rows] == [0, 1, 2]
    assert [(r["device_id"], r["data"]) for r in rows] == [(1, 10), (2, 20), (1, 30)]
    assert rows[1]["device_name"] == "device_2"
    assert rows[2]["received_at"] == 1002.0


def test_torn_tail_record_is_skipped(tmp_path):
    path = tmp_path / "c.tmc"
    write_capture(path, [(1, 1), (1, 2)])
    path.write_bytes(path.read_bytes()[:-5])

    with pytest.warns(UserWarning, match="Torn"):
        rows = list(scan_capture(path))
    assert len(rows) == 1


def test_bad_file_header(tmp_path):
    path = tmp_path / "c.tmc"
    path.write_bytes(b"NOPE")
    with pytest.raises(CaptureError):
        list(scan_capture(path))


def test_bad_record_magic(tmp_path):
    path = tmp_path / "c.tmc"
    write_capture(path, [(1, 1)])
    b = bytearray(path.read_bytes())
    b[4] ^= 0xFF
    path.write_bytes(bytes(b))
    with pytest.raises(CaptureError):
        list(scan_capture(path))


def test_append_rejects_wrong_size(tmp_path):
    with CaptureWriter(tmp_path / "c.tmc") as w:
        with pytest.raises(ValueError):
            w.append(b"\x00" * 10)


def test_export_writes_parquet(tmp_path):
    path = tmp_path / "c.tmc"
    write_capture(path, [(1, 10), (2, 20), (1, 30)])
    out = tmp_path / "out" / "frames.parquet"

    df = export_capture(path, out)
    assert device_counts(df).to_dict() == {1: 2, 2: 1}

    table = pq.read_table(out)
    assert table.column_names == ["seq", "received_at", "device_id", "device_name", "data"]
    assert table.column("data").to_pylist() == [10, 20, 30]


def test_empty_capture_exports_empty_table(tmp_path):
    path = tmp_path / "c.tmc"
    write_capture(path, [])
    assert capture_to_frame(path).empty


def test_export_cli(tmp_path):
    path = tmp_path / "c.tmc"
    write_capture(path, [(3, 1), (3, 2)])
    out = tmp_path / "frames.parquet"

    result = CliRunner().invoke(export_main, [str(path), str(out)])
    assert result.exit_code == 0, result.output
    assert "device 3: 2" in result.output
    assert out.exists()


def test_export_cli_fails_closed(tmp_path):
    path = tmp_path / "c.tmc"
    path.write_bytes(b"JUNKJUNK")
    result = CliRunner().invoke(export_main, [str(path), str(tmp_path / "x.parquet")])
    assert result.exit_code == 1
