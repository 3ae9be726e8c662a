from dataclasses import dataclass
from functools import lru_cache
import os

import httpx

STORAGE_BACKENDS = {"s3", "local"}


def _to_int(name: str, value: str | None, *, default: int, minimum: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc
    return max(minimum, parsed)


def _to_float(name: str, value: str | None, *, default: float, minimum: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc
    return max(minimum, parsed)


def _to_url(name: str, value: str) -> str:
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL as exc:
        raise ValueError(f"{name}: {value!r} is not a valid URL") from exc
    if url.scheme not in {"http", "https"} or not url.host:
        raise ValueError(f"{name}: {value!r} is not an absolute http(s) URL")
    return value.rstrip("/")


def _optional(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclass(frozen=True)
class StoreSettings:
    bucket: str
    endpoint_url: str | None = None
    region: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None


@dataclass(frozen=True)
class Settings:
    api_url: str
    templates_token: str
    executions_token: str
    http_timeout_seconds: float
    storage_backend: str
    local_storage_root: str
    source: StoreSettings
    source_root_prefix: str
    dest: StoreSettings
    max_part_bytes: int
    quantity_column: int
    template_name: str
    bot_id: str
    storefront_name: str
    key_expression: str

    @property
    def templates_url(self) -> str:
        return f"{self.api_url}/integrations-templates"

    @property
    def executions_url(self) -> str:
        return f"{self.api_url}/integrations-executions"


def _store_settings(prefix: str, *, default_bucket: str) -> StoreSettings:
    endpoint_url = _optional(os.getenv(f"{prefix}_S3_ENDPOINT_URL"))
    if endpoint_url is not None:
        endpoint_url = _to_url(f"{prefix}_S3_ENDPOINT_URL", endpoint_url)
    return StoreSettings(
        bucket=os.getenv(f"{prefix}_BUCKET", default_bucket),
        endpoint_url=endpoint_url,
        region=_optional(os.getenv(f"{prefix}_S3_REGION")),
        access_key_id=_optional(os.getenv(f"{prefix}_S3_ACCESS_KEY_ID")),
        secret_access_key=_optional(os.getenv(f"{prefix}_S3_SECRET_ACCESS_KEY")),
    )


@lru_cache
def get_settings() -> Settings:
    storage_backend = os.getenv("STORAGE_BACKEND", "s3").strip().lower()
    if storage_backend not in STORAGE_BACKENDS:
        raise ValueError(
            f"STORAGE_BACKEND must be one of {sorted(STORAGE_BACKENDS)}, got {storage_backend!r}"
        )

    return Settings(
        api_url=_to_url(
            "API_URL",
            os.getenv("API_URL", "https://api-ww-us-001.yalochat.com/commerce"),
        ),
        templates_token=os.getenv("TEMPLATES_TOKEN", ""),
        executions_token=os.getenv("EXECUTIONS_TOKEN", ""),
        http_timeout_seconds=_to_float(
            "HTTP_TIMEOUT_SECONDS", os.getenv("HTTP_TIMEOUT_SECONDS"), default=30.0, minimum=1.0
        ),
        storage_backend=storage_backend,
        local_storage_root=os.getenv("LOCAL_STORAGE_ROOT", "/workspace/data/object_store"),
        source=_store_settings("SOURCE", default_bucket="bucket_rmscm02056_yalo"),
        source_root_prefix=os.getenv("SOURCE_ROOT_PREFIX", "mx_sellout"),
        dest=_store_settings("DEST", default_bucket="cmrc-integrations"),
        max_part_bytes=_to_int(
            "MAX_PART_BYTES", os.getenv("MAX_PART_BYTES"), default=10 * 1024 * 1024, minimum=1
        ),
        quantity_column=_to_int(
            "QUANTITY_COLUMN", os.getenv("QUANTITY_COLUMN"), default=5, minimum=0
        ),
        template_name=os.getenv("TEMPLATE_NAME", "bepensa-order"),
        bot_id=os.getenv("BOT_ID", "bepensa-mx-prd"),
        storefront_name=os.getenv("STOREFRONT_NAME", "bepensa-mx-b2b"),
        key_expression=os.getenv("KEY_EXPRESSION", "Record.get('id')"),
    )
