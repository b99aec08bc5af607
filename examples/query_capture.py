"""Query an exported capture - per-device frame counts and data range."""
from __future__ import annotations

import sys
from pathlib import Path

import duckdb


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: python query_capture.py <capture.parquet> [device_id]")
        print("Example: python query_capture.py capture.parquet 1")
        sys.exit(1)

    table = Path(sys.argv[1])
    con = duckdb.connect(":memory:")
    con.execute(f"CREATE VIEW frames AS SELECT * FROM '{table}'")

    sql = """
    SELECT
        device_id,
        any_value(device_name) AS device_name,
        count(*) AS frames,
        min(data) AS min_data,
        max(data) AS max_data,
        max(received_at) - min(received_at) AS span_s
    FROM frames
    """
    params: list = []
    if len(sys.argv) > 2:
        sql += " WHERE device_id = ?"
        params.append(int(sys.argv[2]))
    sql += " GROUP BY device_id ORDER BY device_id"

    df = con.execute(sql, params).fetchdf()
    if df.empty:
        print("No frames captured.")
        return
    for _, row in df.iterrows():
        print(f"{row['device_name']} (id {row['device_id']}): {row['frames']} frames")
        print(f"  data range: {row['min_data']}..{row['max_data']}")
        print(f"  span: {row['span_s']:.1f}s")


if __name__ == "__main__":
    main()
