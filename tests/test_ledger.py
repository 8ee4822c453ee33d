"""Tests for the polars ledger and table persistence."""

from datetime import datetime, timedelta, timezone

import polars as pl
import pytest

from bayesoc.backends.polars.io import RunArchive, read_table, write_table
from bayesoc.backends.polars.ledger import PolarsLedger
from bayesoc.core.errors import InvalidParameterError
from bayesoc.core.ledger import PayloadRegistry
from bayesoc.core.names import Namespace


def _write(ledger, i, run_id="run#1", namespace=Namespace.STATS, kind="oc_row", **payload):
    ledger.write_event(
        time_index=f"t{i}",
        namespace=namespace,
        kind=kind,
        run_id=run_id,
        point_key=f"n={10 * i}",
        payload_type="OCRow",
        payload={"n": 10 * i, **payload},
    )


class TestPolarsLedger:
    def test_append_and_filter(self):
        ledger = PolarsLedger()
        for i in range(1, 4):
            _write(ledger, i, estimate=0.1 * i)
        _write(ledger, 4, run_id="run#2")
        reader = ledger.reader()
        assert reader.count() == 4
        assert reader.count(run_id="run#1") == 3
        rows = list(ledger.iter_ns(namespace=Namespace.STATS, run_id="run#1"))
        assert [r.payload["n"] for r in rows] == [10, 20, 30]
        assert rows[0].namespace == "stats"

    def test_latest(self):
        ledger = PolarsLedger()
        assert ledger.latest(namespace=Namespace.STATS) is None
        _write(ledger, 1)
        _write(ledger, 2)
        latest = ledger.latest(namespace=Namespace.STATS, run_id="run#1")
        assert latest is not None
        assert latest.time_index == "t2"

    def test_signal_payload(self):
        ledger = PolarsLedger()
        ledger.emit(
            time_index="t1",
            run_id="run#1",
            point_key="n=10",
            topic="non_convergence",
            body={"excluded": 2},
            tag="oc:excluded",
        )
        row = ledger.latest(namespace=Namespace.SIGNALS, tag="oc:excluded")
        assert row is not None
        assert row.payload == {"topic": "non_convergence", "body": {"excluded": 2}}
        assert row.payload_type == "Signal"

    def test_timestamps_are_utc(self):
        ledger = PolarsLedger()
        local = datetime(2024, 1, 1, 12, tzinfo=timezone(timedelta(hours=2)))
        ledger.write_event(
            time_index="t1",
            namespace="stats",
            kind="oc_row",
            run_id="r",
            point_key="n=1",
            payload_type="OCRow",
            payload={},
            ts=local,
        )
        row = ledger.latest()
        assert row is not None
        assert row.ts == datetime(2024, 1, 1, 10, tzinfo=timezone.utc)

    def test_payload_registry_decodes(self):
        PayloadRegistry.register("DesignSize", lambda p: int(p["n"]))
        ledger = PolarsLedger()
        ledger.write_event(
            time_index="t1",
            namespace=Namespace.DESIGN,
            kind="note",
            run_id="r",
            point_key="n=30",
            payload_type="DesignSize",
            payload={"n": 30},
        )
        row = ledger.latest(namespace=Namespace.DESIGN)
        assert row is not None
        assert row.payload == 30

    def test_replace_with_frame_normalises_schema(self):
        ledger = PolarsLedger()
        _write(ledger, 1)
        frame = ledger.frame().drop("tag")
        other = PolarsLedger()
        other.replace_with_frame(frame)
        assert other.frame().columns == ledger.frame().columns
        assert other.reader().count() == 1

    def test_appends_after_a_read_are_visible(self):
        ledger = PolarsLedger()
        _write(ledger, 1)
        assert ledger.reader().count() == 1
        _write(ledger, 2)
        _write(ledger, 3)
        assert ledger.frame().height == 3
        assert [r.time_index for r in ledger.reader().iter_rows()] == ["t1", "t2", "t3"]

    def test_points_of_a_run(self):
        ledger = PolarsLedger()
        _write(ledger, 1)
        _write(ledger, 2)
        _write(ledger, 3, kind="note")
        _write(ledger, 4, run_id="run#2")
        assert ledger.points("run#1") == ["n=10", "n=20"]

    def test_unknown_filter(self):
        with pytest.raises(TypeError):
            PolarsLedger().reader().count(entity="run#1")


class TestTableIO:
    def test_parquet_keeps_dtypes(self, tmp_path):
        table = pl.DataFrame({"n": [10, 20], "a0": [None, None], "estimate": [0.02, 0.03]},
                             schema_overrides={"a0": pl.Float64})
        path = str(tmp_path / "nested" / "oc.parquet")
        write_table(table, path)
        assert read_table(path).equals(table)

    def test_csv_restores_design_columns(self, tmp_path):
        table = pl.DataFrame({"n": [10, 20], "a0": [None, None], "estimate": [0.25, 0.5]},
                             schema_overrides={"a0": pl.Float64})
        path = str(tmp_path / "oc.csv")
        write_table(table, path)
        restored = read_table(path)
        assert restored.schema["a0"] == pl.Float64
        assert restored["estimate"].to_list() == [0.25, 0.5]

    def test_unknown_suffix(self, tmp_path):
        with pytest.raises(InvalidParameterError):
            write_table(pl.DataFrame({"n": [1]}), str(tmp_path / "oc.xlsx"))


class TestRunArchive:
    def test_save_and_load_run(self, tmp_path):
        ledger = PolarsLedger()
        _write(ledger, 1, estimate=0.2)
        _write(ledger, 2, run_id="other")
        table = pl.DataFrame({"n": [10], "estimate": [0.2]})

        archive = RunArchive(str(tmp_path / "runs"))
        archive.save("run#1", table, ledger)
        archive.save("other", table)

        assert archive.runs() == ["other", "run#1"]
        assert archive.load_table("run#1").equals(table)
        restored = archive.load_ledger("run#1")
        assert restored.reader().count() == 1
        row = restored.latest(namespace=Namespace.STATS)
        assert row is not None
        assert row.payload == {"n": 10, "estimate": 0.2}

    def test_missing_ledger(self, tmp_path):
        archive = RunArchive(str(tmp_path), table_format="csv")
        archive.save("r", pl.DataFrame({"n": [10], "estimate": [0.1]}))
        with pytest.raises(InvalidParameterError):
            archive.load_ledger("r")

    def test_empty_archive(self, tmp_path):
        assert RunArchive(str(tmp_path / "missing")).runs() == []

    def test_invalid_format(self, tmp_path):
        with pytest.raises(InvalidParameterError):
            RunArchive(str(tmp_path), table_format="json")
