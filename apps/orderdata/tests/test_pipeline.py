import csv
from datetime import date
import io

import pytest

from orderdata.ingest import IngestionError, IntegrationTarget
from orderdata.pipeline import Pipeline, PipelineConfig, RunState, run_pipeline
from orderdata.storage import LocalObjectStore
from orderdata.types import FileRef

TODAY = date(2023, 10, 18)
HEADER = ["order_id", "customer", "sku", "date", "store", "quantity", "notes"]
CONFIG = PipelineConfig(
    root_prefix="mx_sellout",
    max_part_bytes=100,
    quantity_column=5,
    target=IntegrationTarget(
        template_name="bepensa-order",
        storefront_name="bepensa-mx-b2b",
        bot_id="bepensa-mx-prd",
        key_expression="Record.get('id')",
    ),
)


class FakeDriver:
    def __init__(self, *, fail_on: set[str] | None = None) -> None:
        self.calls: list[FileRef] = []
        self._fail_on = fail_on or set()

    def ingest(self, part: FileRef) -> str:
        self.calls.append(part)
        if part.name in self._fail_on:
            raise IngestionError(f"could not ingest {part}: POST returned 500")
        return f"exec-{len(self.calls)}"


def _drop(store: LocalObjectStore, name: str, quantities: list[str]) -> None:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(HEADER)
    for index, quantity in enumerate(quantities):
        # 60 bytes per row once joined, so two rows exceed a 100 byte part.
        record = [f"o{index:03d}", "c01", "sku9", "20231018", "s1", quantity, ""]
        record[-1] = "x" * (59 - len(",".join(record)))
        writer.writerow(record)
    store.write(name, buffer.getvalue().encode("utf-8"), content_type="text/csv")


def _seed_three_files(store: LocalObjectStore) -> list[str]:
    names = [f"mx_sellout/20231018-cubo-ventas-00{index}.csv" for index in range(1, 4)]
    for name in names:
        _drop(store, name, ["1", "2", "3"])
    _drop(store, "mx_sellout/20231017-cubo-ventas-001.csv", ["1"])
    return names


def test_run_pipeline_ingests_every_part(
    source_store: LocalObjectStore, dest_store: LocalObjectStore, capsys: pytest.CaptureFixture[str]
) -> None:
    names = _seed_three_files(source_store)
    driver = FakeDriver()

    result = run_pipeline(
        config=CONFIG,
        source_store=source_store,
        dest_store=dest_store,
        driver=driver,
        today=TODAY,
    )

    assert result.ok
    assert result.state is RunState.DONE
    assert result.failure is None
    assert [ref.name for ref in result.files] == names
    assert sorted(result.executions) == [0, 1, 2]
    assert [entry.execution_id for entry in result.executions[2]] == ["exec-5", "exec-6"]
    assert [entry.part.name for entry in result.executions[0]] == [
        f"{names[0]}_part_000000.csv",
        f"{names[0]}_part_000002.csv",
    ]
    assert all(part.bucket == "dest-bucket" for part in driver.calls)

    out = capsys.readouterr().out
    assert f"[orderdata] {names[0]}: 2 parts" in out
    assert "['exec-1', 'exec-2']" in out
    assert "[orderdata] run done" in out


def test_run_pipeline_aborts_on_ingestion_failure_and_reports_prefix(
    source_store: LocalObjectStore, dest_store: LocalObjectStore, capsys: pytest.CaptureFixture[str]
) -> None:
    names = _seed_three_files(source_store)
    failing_part = f"{names[1]}_part_000002.csv"
    driver = FakeDriver(fail_on={failing_part})

    result = run_pipeline(
        config=CONFIG,
        source_store=source_store,
        dest_store=dest_store,
        driver=driver,
        today=TODAY,
    )

    assert not result.ok
    assert result.state is RunState.ABORTED
    assert [entry.execution_id for entry in result.executions[0]] == ["exec-1", "exec-2"]
    assert [entry.part.name for entry in result.executions[1]] == [f"{names[1]}_part_000000.csv"]
    assert 2 not in result.executions
    assert len(driver.calls) == 4

    assert result.failure is not None
    assert result.failure.stage is RunState.INGESTING
    assert result.failure.file == FileRef(bucket="source-bucket", name=names[1])
    assert result.failure.part == FileRef(bucket="dest-bucket", name=failing_part)
    assert isinstance(result.failure.error, IngestionError)

    assert not any(name.startswith(names[2]) for name in dest_store.iter_names(""))

    captured = capsys.readouterr()
    assert f"- part: dest-bucket/{failing_part}" in captured.err
    assert "POST returned 500" in captured.err
    assert f"[orderdata] source-bucket/{names[2]}: not processed" in captured.out
    assert "[orderdata] run aborted" in captured.out


def test_run_pipeline_aborts_on_split_failure(
    source_store: LocalObjectStore, dest_store: LocalObjectStore, capsys: pytest.CaptureFixture[str]
) -> None:
    _drop(source_store, "mx_sellout/20231018-a.csv", ["1", "1", "bad"])
    _drop(source_store, "mx_sellout/20231018-b.csv", ["1"])
    driver = FakeDriver()

    result = run_pipeline(
        config=CONFIG,
        source_store=source_store,
        dest_store=dest_store,
        driver=driver,
        today=TODAY,
    )

    assert result.state is RunState.ABORTED
    assert result.failure is not None
    assert result.failure.stage is RunState.SPLITTING
    assert result.failure.file == FileRef(bucket="source-bucket", name="mx_sellout/20231018-a.csv")
    assert result.failure.part is None
    assert result.executions == {}
    assert driver.calls == []

    out = capsys.readouterr().out
    assert "[orderdata] mx_sellout/20231018-a.csv: 1 parts" in out
    assert "mx_sellout/20231018-b.csv: 1 parts" not in out


def test_run_pipeline_aborts_on_discovery_failure(store_root, dest_store: LocalObjectStore) -> None:
    missing_source = LocalObjectStore(root=store_root, bucket="missing-bucket")

    pipeline = Pipeline(
        config=CONFIG,
        source_store=missing_source,
        dest_store=dest_store,
        driver=FakeDriver(),
        today=TODAY,
    )
    result = pipeline.run()

    assert pipeline.state is RunState.ABORTED
    assert result.files == []
    assert result.failure is not None
    assert result.failure.stage is RunState.DISCOVERING
    assert result.failure.file is None


def test_run_pipeline_with_no_matching_files_is_done(
    source_store: LocalObjectStore, dest_store: LocalObjectStore
) -> None:
    _drop(source_store, "mx_sellout/20231017-cubo-ventas-001.csv", ["1"])

    result = run_pipeline(
        config=CONFIG,
        source_store=source_store,
        dest_store=dest_store,
        driver=FakeDriver(),
        today=TODAY,
    )

    assert result.state is RunState.DONE
    assert result.files == []
    assert result.executions == {}


def test_run_pipeline_records_empty_entry_for_header_only_file(
    source_store: LocalObjectStore, dest_store: LocalObjectStore
) -> None:
    _drop(source_store, "mx_sellout/20231018-empty.csv", [])

    result = run_pipeline(
        config=CONFIG,
        source_store=source_store,
        dest_store=dest_store,
        driver=FakeDriver(),
        today=TODAY,
    )

    assert result.ok
    assert result.executions == {0: []}


@pytest.mark.parametrize(
    ("max_part_bytes", "quantity_column", "message"),
    [(0, 5, "max_part_bytes must be > 0"), (100, -1, "quantity_column must be >= 0")],
)
def test_pipeline_config_rejects_invalid_values(
    max_part_bytes: int, quantity_column: int, message: str
) -> None:
    with pytest.raises(ValueError, match=message):
        PipelineConfig(
            root_prefix="mx_sellout",
            max_part_bytes=max_part_bytes,
            quantity_column=quantity_column,
            target=CONFIG.target,
        )


def test_run_pipeline_uses_injected_splitter(
    source_store: LocalObjectStore, dest_store: LocalObjectStore
) -> None:
    _drop(source_store, "mx_sellout/20231018-a.csv", ["1"])
    calls: list[tuple[FileRef, int, int]] = []

    def fake_splitter(source, source_file, dest, *, max_part_bytes, quantity_column):
        del source
        calls.append((source_file, max_part_bytes, quantity_column))
        return [FileRef(bucket=dest.bucket, name="precomputed_part.csv")]

    driver = FakeDriver()
    result = run_pipeline(
        config=CONFIG,
        source_store=source_store,
        dest_store=dest_store,
        driver=driver,
        today=TODAY,
        splitter=fake_splitter,
    )

    assert result.ok
    assert calls == [(FileRef(bucket="source-bucket", name="mx_sellout/20231018-a.csv"), 100, 5)]
    assert driver.calls == [FileRef(bucket="dest-bucket", name="precomputed_part.csv")]
