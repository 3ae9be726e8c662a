from __future__ import annotations

import argparse
from datetime import date, datetime
from pathlib import Path
import sys

from orderdata.config import Settings, StoreSettings, get_settings
from orderdata.ingest import IngestionDriver, IntegrationTarget
from orderdata.integrations_client import HttpExecutionsClient, HttpTemplatesClient
from orderdata.pipeline import PipelineConfig, run_pipeline
from orderdata.storage import LocalObjectStore, ObjectStore, S3ObjectStore


def _parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y%m%d").date()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYYMMDD, got {value!r}") from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orderdata-ingest",
        description="Split today's order CSV drops into parts and create one integration execution per part",
    )
    parser.add_argument(
        "--date",
        type=_parse_date,
        default=None,
        help="Drop date to process as YYYYMMDD (defaults to today)",
    )
    parser.add_argument(
        "--max-part-bytes",
        type=int,
        default=None,
        help="Size in bytes after which a new part is started (overrides MAX_PART_BYTES)",
    )
    return parser


def _build_store(settings: Settings, store_settings: StoreSettings) -> ObjectStore:
    if settings.storage_backend == "local":
        return LocalObjectStore(root=Path(settings.local_storage_root), bucket=store_settings.bucket)
    return S3ObjectStore.from_settings(store_settings)


def build_pipeline_config(settings: Settings, *, max_part_bytes: int | None = None) -> PipelineConfig:
    if max_part_bytes is not None and max_part_bytes <= 0:
        raise ValueError("--max-part-bytes must be > 0")
    return PipelineConfig(
        root_prefix=settings.source_root_prefix,
        max_part_bytes=max_part_bytes or settings.max_part_bytes,
        quantity_column=settings.quantity_column,
        target=IntegrationTarget(
            template_name=settings.template_name,
            storefront_name=settings.storefront_name,
            bot_id=settings.bot_id,
            key_expression=settings.key_expression,
        ),
    )


def build_driver(settings: Settings, target: IntegrationTarget) -> IngestionDriver:
    return IngestionDriver(
        target=target,
        templates_client=HttpTemplatesClient(
            base_url=settings.templates_url,
            token=settings.templates_token,
            timeout_seconds=settings.http_timeout_seconds,
        ),
        executions_client=HttpExecutionsClient(
            base_url=settings.executions_url,
            token=settings.executions_token,
            timeout_seconds=settings.http_timeout_seconds,
        ),
    )


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    try:
        settings = get_settings()
        config = build_pipeline_config(settings, max_part_bytes=args.max_part_bytes)
        source_store = _build_store(settings, settings.source)
        dest_store = _build_store(settings, settings.dest)
        driver = build_driver(settings, config.target)
    except Exception as exc:
        print(f"[orderdata-ingest] failed to start: {exc}", file=sys.stderr, flush=True)
        raise SystemExit(1) from exc

    result = run_pipeline(
        config=config,
        source_store=source_store,
        dest_store=dest_store,
        driver=driver,
        today=args.date or date.today(),
    )
    if not result.ok:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
