from __future__ import annotations

from dataclasses import dataclass

from orderdata.integrations_client import (
    ExecutionsClient,
    IntegrationsClientError,
    TemplatesClient,
)
from orderdata.types import FileRef


class IngestionError(RuntimeError):
    pass


@dataclass(frozen=True)
class IntegrationTarget:
    template_name: str
    storefront_name: str
    bot_id: str
    key_expression: str


def build_template_args(target: IntegrationTarget, part: FileRef) -> dict[str, str]:
    return {
        "storefrontName": target.storefront_name,
        "botId": target.bot_id,
        "keyExpression": target.key_expression,
        "bucket": part.bucket,
        "file": part.name,
    }


class IngestionDriver:
    def __init__(
        self,
        *,
        target: IntegrationTarget,
        templates_client: TemplatesClient,
        executions_client: ExecutionsClient,
    ) -> None:
        self._target = target
        self._templates_client = templates_client
        self._executions_client = executions_client

    def ingest(self, part: FileRef) -> str:
        args = build_template_args(self._target, part)
        try:
            payload = self._templates_client.render_template(self._target.template_name, args)
            return self._executions_client.create_execution(payload)
        except IntegrationsClientError as exc:
            raise IngestionError(f"could not ingest {part}: {exc}") from exc
