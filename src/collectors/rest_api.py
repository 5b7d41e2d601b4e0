"""
REST collector for multi-endpoint JSON APIs.

Each endpoint is fetched in turn with a fixed delay between requests. The
records of each response are run through the endpoint's field mapping and
normalized into ProjectInfo (or MarketInfo for market_info sources).

Failure policy: an endpoint whose retries are exhausted is logged and
skipped; the remaining endpoints still run. Only a run where every endpoint
failed is reported as a failed collection.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from src.collectors.base import BaseCollector, RateLimiter, ValidationResult
from src.collectors.config import CollectorsConfig
from src.ingestion.hashing import content_hash
from src.ingestion.http_client import HTTPClient, HTTPClientError, RetryConfig
from src.ingestion.mapping import Transform, apply_mapping, apply_transform, get_nested_value
from src.ingestion.schemas import MarketInfo, ProjectInfo, RawInfo, RecordType
from src.sources.schemas import (
    CollectorType,
    EndpointConfig,
    RestApiConfig,
    SourceConfig,
)

logger = logging.getLogger(__name__)


class CollectionError(Exception):
    """Raised when no endpoint of a source produced a response."""

    pass


def _first(mapped: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = mapped.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def extract_records(payload: Any, endpoint: EndpointConfig) -> list[dict[str, Any]]:
    """Pull the list of upstream records out of a decoded response body."""
    if endpoint.data_path:
        payload = get_nested_value(payload, endpoint.data_path)

    if isinstance(payload, list):
        records = [r for r in payload if isinstance(r, dict)]
    elif isinstance(payload, dict):
        records = [payload]
    else:
        records = []

    if endpoint.limit is not None:
        records = records[: endpoint.limit]
    return records


class RestApiCollector(BaseCollector):
    """Collector for `api:rest` sources."""

    def __init__(self, config: CollectorsConfig | None = None):
        self._config = config or CollectorsConfig()

    @property
    def collector_type(self) -> CollectorType:
        return CollectorType.REST_API

    def _retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self._config.max_attempts,
            base_delay=self._config.retry_base_delay,
            max_rate_limit_wait=self._config.max_rate_limit_wait,
        )

    def _headers(self, cfg: RestApiConfig) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": self._config.user_agent,
            **cfg.headers,
        }

    def validate_config(self, config: Any) -> ValidationResult:
        try:
            cfg = (
                config
                if isinstance(config, RestApiConfig)
                else RestApiConfig.model_validate(config)
            )
        except ValidationError as e:
            return ValidationResult.from_errors(
                [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            )

        errors: list[str] = []

        if not cfg.base_url:
            errors.append("base_url is required")
        elif not cfg.base_url.startswith(("http://", "https://")):
            errors.append("base_url must start with http:// or https://")

        if not cfg.endpoints:
            errors.append("At least one endpoint is required")

        for i, endpoint in enumerate(cfg.endpoints):
            if not endpoint.path:
                errors.append(f"Endpoint {i}: path is required")
            if not endpoint.mapping:
                errors.append(f"Endpoint {i}: mapping is required")

        if cfg.rate_limit < 1:
            errors.append("rate_limit must be at least 1")

        return ValidationResult.from_errors(errors)

    async def _collect(self, source: SourceConfig) -> tuple[list[RawInfo], int]:
        cfg = source.collector_config
        assert isinstance(cfg, RestApiConfig)

        limiter = RateLimiter(rate=cfg.rate_limit)
        items: list[RawInfo] = []
        total_fetched = 0
        failures: list[str] = []

        async with HTTPClient(
            self._retry_config(),
            timeout=cfg.timeout_seconds,
            headers=self._headers(cfg),
        ) as client:
            for index, endpoint in enumerate(cfg.endpoints):
                if index > 0 and cfg.request_delay_ms > 0:
                    await asyncio.sleep(cfg.request_delay_ms / 1000)

                await limiter.acquire()

                try:
                    records = await self._fetch_endpoint(client, cfg, endpoint)
                except (HTTPClientError, ValueError) as e:
                    failures.append(f"{endpoint.path}: {e}")
                    logger.error(f"Endpoint {endpoint.path} failed for {source.id}: {e}")
                    continue

                total_fetched += len(records)
                for record in records:
                    item = self._normalize(source, endpoint, record)
                    if item is not None:
                        items.append(item)

        if cfg.endpoints and len(failures) == len(cfg.endpoints):
            raise CollectionError("All endpoints failed: " + "; ".join(failures))

        return items, total_fetched

    async def _fetch_endpoint(
        self,
        client: HTTPClient,
        cfg: RestApiConfig,
        endpoint: EndpointConfig,
    ) -> list[dict[str, Any]]:
        url = cfg.base_url.rstrip("/") + "/" + endpoint.path.lstrip("/")

        if endpoint.method == "POST":
            response = await client.post(url, params=endpoint.params, json_body=endpoint.body)
        else:
            response = await client.get(url, params=endpoint.params)

        # ValueError on a non-JSON body
        payload = response.json()
        return extract_records(payload, endpoint)

    def _normalize(
        self,
        source: SourceConfig,
        endpoint: EndpointConfig,
        record: dict[str, Any],
    ) -> RawInfo | None:
        mapped = apply_mapping(record, endpoint.mapping)
        data_hash = content_hash(record)

        if source.type == RecordType.MARKET_INFO:
            return self._to_market_info(source, mapped, record, data_hash)
        return self._to_project_info(source, mapped, record, data_hash)

    def _to_project_info(
        self,
        source: SourceConfig,
        mapped: dict[str, Any],
        record: dict[str, Any],
        data_hash: str,
    ) -> ProjectInfo:
        native_id = str(_first(mapped, "id", "slug", "symbol") or data_hash)

        return ProjectInfo(
            id=ProjectInfo.build_id(source.source_id, native_id),
            source=source.source_id,
            native_id=native_id,
            data_hash=data_hash,
            raw_data=record,
            name=_as_str(_first(mapped, "name")),
            description=_as_str(_first(mapped, "description")),
            logo=_as_str(_first(mapped, "logo", "image")),
            website=_as_str(_first(mapped, "website", "url")),
            source_category=_as_str(_first(mapped, "category")),
            twitter=_as_str(_first(mapped, "twitter", "twitter_handle")),
            token_symbol=_as_str(_first(mapped, "token_symbol", "symbol")),
            attributes=mapped,
        )

    def _to_market_info(
        self,
        source: SourceConfig,
        mapped: dict[str, Any],
        record: dict[str, Any],
        data_hash: str,
    ) -> MarketInfo | None:
        title = _as_str(_first(mapped, "title", "name"))
        if not title:
            return None

        published = apply_transform(_first(mapped, "published_at", "date") or "", Transform.DATE)

        info = MarketInfo(
            id=f"{source.source_id}-{data_hash}",
            source=source.source_id,
            raw_data=record,
            title=title,
            content=_as_str(_first(mapped, "content", "description")) or "",
            url=_as_str(_first(mapped, "url", "link")),
            author=_as_str(_first(mapped, "author")),
            content_hash=data_hash,
        )
        if published:
            info.published_at = datetime.fromisoformat(published)
        info.expires_at = MarketInfo.default_expiry(info.collected_at)
        return info

    async def test_connection(self, source: SourceConfig) -> ValidationResult:
        cfg = source.collector_config
        validation = self.validate_config(cfg)
        if not validation.valid:
            return validation

        endpoint = cfg.endpoints[0]
        probe = HTTPClient(
            RetryConfig(max_attempts=1),
            timeout=self._config.probe_timeout_seconds,
            headers=self._headers(cfg),
        )
        try:
            async with probe as client:
                records = await self._fetch_endpoint(client, cfg, endpoint)
        except (HTTPClientError, ValueError) as e:
            return ValidationResult(valid=False, errors=[str(e)])

        logger.info(f"Connection test for {source.id} returned {len(records)} records")
        return ValidationResult(valid=True)
