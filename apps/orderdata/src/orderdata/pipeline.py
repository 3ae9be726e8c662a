from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
import sys
from typing import Callable, Protocol

from orderdata.ingest import IngestionError, IntegrationTarget
from orderdata.locator import DiscoveryError, find_files
from orderdata.splitter import SplitError, split_file
from orderdata.storage import ObjectStore
from orderdata.types import FileRef, PartResult


class RunState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    SPLITTING = "splitting"
    INGESTING = "ingesting"
    DONE = "done"
    ABORTED = "aborted"


class PartIngester(Protocol):
    def ingest(self, part: FileRef) -> str: ...


Splitter = Callable[..., list[FileRef]]


@dataclass(frozen=True)
class PipelineConfig:
    root_prefix: str
    max_part_bytes: int
    quantity_column: int
    target: IntegrationTarget

    def __post_init__(self) -> None:
        if self.max_part_bytes <= 0:
            raise ValueError(f"max_part_bytes must be > 0, got {self.max_part_bytes}")
        if self.quantity_column < 0:
            raise ValueError(f"quantity_column must be >= 0, got {self.quantity_column}")


@dataclass(frozen=True)
class RunFailure:
    stage: RunState
    error: Exception
    file: FileRef | None = None
    part: FileRef | None = None


@dataclass
class RunResult:
    files: list[FileRef] = field(default_factory=list)
    executions: dict[int, list[PartResult]] = field(default_factory=dict)
    state: RunState = RunState.IDLE
    failure: RunFailure | None = None

    @property
    def ok(self) -> bool:
        return self.state is RunState.DONE


@dataclass(frozen=True)
class _FileOutcome:
    parts: list[FileRef]
    failure: RunFailure | None = None


@dataclass(frozen=True)
class _PartOutcome:
    result: PartResult | None = None
    failure: RunFailure | None = None


def _log(message: str) -> None:
    print(f"[orderdata] {message}", flush=True)


class Pipeline:
    def __init__(
        self,
        *,
        config: PipelineConfig,
        source_store: ObjectStore,
        dest_store: ObjectStore,
        driver: PartIngester,
        today: date,
        splitter: Splitter = split_file,
    ) -> None:
        self._config = config
        self._source_store = source_store
        self._dest_store = dest_store
        self._driver = driver
        self._today = today
        self._splitter = splitter
        self.result = RunResult()

    @property
    def state(self) -> RunState:
        return self.result.state

    def run(self) -> RunResult:
        result = self.result
        result.state = RunState.DISCOVERING
        listing = find_files(self._source_store, self._config.root_prefix, self._today)
        try:
            result.files = list(listing)
        except DiscoveryError as exc:
            self._abort(RunFailure(stage=RunState.DISCOVERING, error=exc))
            self._report()
            return result

        _log(
            f"discovered {len(result.files)} file(s) matching "
            f"{self._source_store.bucket}/{listing.prefix}{listing.pattern}"
        )

        for index, source_file in enumerate(result.files):
            outcome = self._split_step(source_file)
            if outcome.failure is not None:
                self._abort(outcome.failure)
                break

            entries = result.executions.setdefault(index, [])
            failure = None
            for part in outcome.parts:
                part_outcome = self._ingest_step(source_file, part)
                if part_outcome.failure is not None:
                    failure = part_outcome.failure
                    break
                entries.append(part_outcome.result)
            if failure is not None:
                self._abort(failure)
                break
        else:
            result.state = RunState.DONE

        self._report()
        return result

    def _split_step(self, source_file: FileRef) -> _FileOutcome:
        self.result.state = RunState.SPLITTING
        try:
            parts = self._splitter(
                self._source_store,
                source_file,
                self._dest_store,
                max_part_bytes=self._config.max_part_bytes,
                quantity_column=self._config.quantity_column,
            )
        except SplitError as exc:
            _log(f"{source_file.name}: {len(exc.parts)} parts")
            return _FileOutcome(
                parts=exc.parts,
                failure=RunFailure(stage=RunState.SPLITTING, error=exc, file=source_file),
            )

        _log(f"{source_file.name}: {len(parts)} parts")
        return _FileOutcome(parts=parts)

    def _ingest_step(self, source_file: FileRef, part: FileRef) -> _PartOutcome:
        self.result.state = RunState.INGESTING
        try:
            execution_id = self._driver.ingest(part)
        except IngestionError as exc:
            return _PartOutcome(
                failure=RunFailure(
                    stage=RunState.INGESTING, error=exc, file=source_file, part=part
                )
            )
        return _PartOutcome(result=PartResult(part=part, execution_id=execution_id))

    def _abort(self, failure: RunFailure) -> None:
        self.result.failure = failure
        self.result.state = RunState.ABORTED
        print(
            "[orderdata] error ingesting\n"
            f"- stage: {failure.stage.value}\n"
            f"- file: {failure.file or '-'}\n"
            f"- part: {failure.part or '-'}\n"
            f"error: {failure.error}",
            file=sys.stderr,
            flush=True,
        )

    def _report(self) -> None:
        for index, source_file in enumerate(self.result.files):
            entries = self.result.executions.get(index)
            if entries is None:
                _log(f"{source_file}: not processed")
                continue
            execution_ids = [entry.execution_id for entry in entries]
            _log(f"{source_file}: executions={execution_ids}")
        _log(f"run {self.result.state.value}")


def run_pipeline(
    *,
    config: PipelineConfig,
    source_store: ObjectStore,
    dest_store: ObjectStore,
    driver: PartIngester,
    today: date,
    splitter: Splitter = split_file,
) -> RunResult:
    return Pipeline(
        config=config,
        source_store=source_store,
        dest_store=dest_store,
        driver=driver,
        today=today,
        splitter=splitter,
    ).run()
