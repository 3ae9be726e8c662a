from __future__ import annotations

import csv
import io

from orderdata.storage import ObjectStore, ObjectStoreError
from orderdata.types import FileRef

# Rows whose quantity is this close to zero are noise left over from upstream rounding.
QUANTITY_EPSILON = 0.0001
LINE_TERMINATOR = "\n"
PART_CONTENT_TYPE = "text/csv"
ENCODING = "utf-8"
# Bytes that are not valid UTF-8 (e.g. Latin-1 drops) pass through unchanged.
ENCODING_ERRORS = "surrogateescape"


class SplitError(RuntimeError):
    def __init__(self, message: str, *, parts: list[FileRef]) -> None:
        super().__init__(message)
        self.parts = parts


def part_name(source_name: str, row_index: int) -> str:
    return f"{source_name}_part_{row_index:06d}.csv"


def row_size(record: list[str]) -> int:
    return len(",".join(record).encode(ENCODING, ENCODING_ERRORS)) + len(LINE_TERMINATOR)


def include_row(quantity: float) -> bool:
    return abs(quantity) > QUANTITY_EPSILON


def parse_quantity(record: list[str], column: int, *, row_index: int) -> float:
    if column >= len(record):
        raise ValueError(
            f"row {row_index}: expected quantity in column {column}, row has {len(record)} fields"
        )
    value = record[column]
    try:
        if value != value.strip() or "_" in value:
            raise ValueError(value)
        return float(value)
    except ValueError as exc:
        raise ValueError(
            f"row {row_index}: could not convert column {column} to float: {value!r}"
        ) from exc


class PartWriter:
    """One destination part being filled.

    The header is written on creation and does not count towards
    ``bytes_written``; only rows passed to :meth:`write` do.
    """

    def __init__(self, store: ObjectStore, *, name: str, header: list[str]) -> None:
        self.ref = FileRef(bucket=store.bucket, name=name)
        self.bytes_written = 0
        self._store = store
        self._buffer = io.StringIO()
        self._writer = csv.writer(self._buffer, lineterminator=LINE_TERMINATOR)
        self._writer.writerow(header)

    def write(self, record: list[str]) -> None:
        self._writer.writerow(record)
        self.bytes_written += row_size(record)

    def close(self) -> FileRef:
        body = self._buffer.getvalue().encode(ENCODING, ENCODING_ERRORS)
        self._buffer.close()
        self._store.write(self.ref.name, body, content_type=PART_CONTENT_TYPE)
        return self.ref

    def discard(self) -> None:
        self._buffer.close()


def split_file(
    source_store: ObjectStore,
    source_file: FileRef,
    dest_store: ObjectStore,
    *,
    max_part_bytes: int,
    quantity_column: int = 5,
) -> list[FileRef]:
    if max_part_bytes <= 0:
        raise ValueError("max_part_bytes must be > 0")

    parts: list[FileRef] = []
    try:
        stream = source_store.open_read(source_file.name)
    except ObjectStoreError as exc:
        raise SplitError(str(exc), parts=parts) from exc

    current: PartWriter | None = None
    try:
        with io.TextIOWrapper(stream, encoding=ENCODING, errors=ENCODING_ERRORS, newline="") as text:
            reader = csv.reader(text)
            header = next(reader, None)
            if header is None:
                raise SplitError(f"{source_file}: missing header row", parts=parts)

            row_index = 0
            for record in reader:
                if not record:
                    continue

                # Rollover uses the size left behind by the previous row, so a
                # part can overshoot max_part_bytes by one row.
                if current is None or current.bytes_written > max_part_bytes:
                    if current is not None:
                        parts.append(current.close())
                    current = PartWriter(
                        dest_store,
                        name=part_name(source_file.name, row_index),
                        header=header,
                    )

                quantity = parse_quantity(record, quantity_column, row_index=row_index)
                if include_row(quantity):
                    current.write(record)
                row_index += 1

            if current is not None:
                parts.append(current.close())
                current = None
    except (ObjectStoreError, OSError, csv.Error, ValueError) as exc:
        raise SplitError(f"{source_file}: {exc}", parts=list(parts)) from exc
    finally:
        if current is not None:
            current.discard()
        stream.close()

    return parts
