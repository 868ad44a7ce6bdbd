"""
Meta Marketing API connector.

Covers the calls the suggestion pipeline needs:
  - POST /act_{id}/insights           start an async ad set report
  - GET  /{report_run_id}             poll its status
  - GET  export_report?report_run_id  download the CSV (streamed)
  - GET  /act_{id}/adsets, /campaigns ad set and campaign metadata
  - POST /{adset_or_campaign_id}      change daily_budget on approval

Graph API budgets are integers in the currency's minimum denomination
(cents for USD, whole dong for VND). Everything leaving this module is in
the major unit.
"""
import asyncio
import json
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp

from adscale.config import get_settings
from adscale.connectors.base import AdPlatformClient
from adscale.connectors.base_connector import BaseConnector
from adscale.exceptions import AdPlatformError, ReportFailedError, ReportNotReadyError
from adscale.repositories.base import EntitySnapshot
from adscale.services.record_mapper import ReportGrain
from adscale.services.suggestion_lifecycle import SuggestionType
from adscale.utils.logger import log
from adscale.utils.retry import is_retryable_status

settings = get_settings()

# Fields requested from the insights endpoint at ad set level
ADSET_INSIGHT_FIELDS = (
    "account_id",
    "account_name",
    "campaign_id",
    "campaign_name",
    "adset_id",
    "adset_name",
    "impressions",
    "clicks",
    "spend",
    "cpm",
    "cpc",
    "ctr",
    "reach",
    "frequency",
    "inline_link_click_ctr",
    "cost_per_inline_link_click",
    "purchase_roas",
    "actions",
    "action_values",
    "cost_per_result",
)

ADSET_FIELDS = "id,name,campaign{id,name},status,daily_budget,lifetime_budget,start_time,end_time,updated_time"
CAMPAIGN_FIELDS = "id,name,status,objective,daily_budget,lifetime_budget,start_time,updated_time"
ACCOUNT_FIELDS = "id,account_id,name,currency,timezone_name,account_status"

REPORT_COMPLETED = "Job Completed"
REPORT_FAILED_STATUSES = ("Job Failed", "Job Skipped")

# Currencies Meta bills in whole units (offset 1 instead of 100)
ZERO_DECIMAL_CURRENCIES = frozenset({
    "CLP", "COP", "CRC", "HUF", "ISK", "IDR", "JPY", "KRW", "PYG", "TWD", "VND",
})

# Graph error codes that clear up on their own (throttling, transient)
RETRYABLE_GRAPH_CODES = frozenset({1, 2, 4, 17, 32, 341, 613, 80004})

STREAM_CHUNK_SIZE = 64 * 1024


def currency_offset(currency: Optional[str]) -> int:
    if currency and currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return 1
    return 100


def from_minor_units(value: Any, currency: Optional[str]) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return int(value) / currency_offset(currency)
    except (TypeError, ValueError):
        return None


def to_minor_units(value: float, currency: Optional[str]) -> int:
    return int(round(value * currency_offset(currency)))


def account_path(ad_account_id: str) -> str:
    return ad_account_id if ad_account_id.startswith("act_") else f"act_{ad_account_id}"


def parse_graph_time(value: Optional[str]) -> Optional[datetime]:
    """'2024-01-15T10:00:00+0700' -> naive UTC datetime."""
    if not value:
        return None
    try:
        moment = datetime.strptime(value, "%Y-%m-%dT%H:%M:%S%z")
    except ValueError:
        return None
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def adset_snapshot(data: Dict[str, Any], ad_account_id: str, currency: Optional[str]) -> EntitySnapshot:
    campaign = data.get("campaign") or {}
    return EntitySnapshot(
        type=SuggestionType.ADSET,
        entity_id=str(data["id"]),
        ad_account_id=ad_account_id,
        name=data.get("name"),
        campaign_id=campaign.get("id") or data.get("campaign_id"),
        campaign_name=campaign.get("name"),
        status=data.get("status"),
        daily_budget=from_minor_units(data.get("daily_budget"), currency),
        lifetime_budget=from_minor_units(data.get("lifetime_budget"), currency),
        currency=currency,
        start_time=parse_graph_time(data.get("start_time")),
        end_time=parse_graph_time(data.get("end_time")),
        updated_time=parse_graph_time(data.get("updated_time")),
    )


def campaign_snapshot(data: Dict[str, Any], ad_account_id: str, currency: Optional[str]) -> EntitySnapshot:
    return EntitySnapshot(
        type=SuggestionType.CAMPAIGN,
        entity_id=str(data["id"]),
        ad_account_id=ad_account_id,
        name=data.get("name"),
        campaign_id=str(data["id"]),
        campaign_name=data.get("name"),
        status=data.get("status"),
        daily_budget=from_minor_units(data.get("daily_budget"), currency),
        lifetime_budget=from_minor_units(data.get("lifetime_budget"), currency),
        currency=currency,
        start_time=parse_graph_time(data.get("start_time")),
        updated_time=parse_graph_time(data.get("updated_time")),
    )


def graph_error(payload: Any, status: int) -> Optional[AdPlatformError]:
    """AdPlatformError for an error response, None for a successful one."""
    error = payload.get("error") if isinstance(payload, dict) else None
    if error is None and status < 400:
        return None
    error = error or {}
    code = error.get("code")
    message = error.get("message") or "Graph API request failed"
    retryable = code in RETRYABLE_GRAPH_CODES or bool(error.get("is_transient")) or is_retryable_status(status)
    return AdPlatformError(f"{message} (code {code})" if code else message, status=status, retryable=retryable)


class MetaAdsConnector(BaseConnector, AdPlatformClient):
    """Connector for the Meta Marketing API"""

    def __init__(
        self,
        access_token: Optional[str] = None,
        api_version: Optional[str] = None,
        poll_interval: Optional[float] = None,
        poll_max_attempts: Optional[int] = None,
    ):
        super().__init__("Meta Ads")
        self.access_token = access_token or settings.meta_access_token
        self.base_url = f"{settings.meta_graph_url.rstrip('/')}/{api_version or settings.meta_api_version}"
        self.export_url = settings.meta_export_url
        self.poll_interval = settings.report_poll_interval_seconds if poll_interval is None else poll_interval
        self.poll_max_attempts = poll_max_attempts or settings.report_poll_max_attempts
        self.timeout = aiohttp.ClientTimeout(total=settings.meta_request_timeout_seconds)

    async def _request(self, method: str, path: str, params: Optional[Dict] = None, data: Optional[Dict] = None) -> Dict:
        """One Graph API call; raises AdPlatformError on an error payload."""
        params = dict(params or {})
        if path.startswith("http"):
            # Paging links already carry the token and query
            url = path
        else:
            url = f"{self.base_url}/{path.lstrip('/')}"
            params["access_token"] = self.access_token

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.request(method, url, params=params or None, data=data) as response:
                try:
                    payload = await response.json(content_type=None)
                except (aiohttp.ContentTypeError, json.JSONDecodeError, ValueError):
                    payload = {}
                error = graph_error(payload, response.status)
                if error:
                    raise error
                return payload

    async def _call(self, method: str, path: str, operation_name: str, **kwargs) -> Dict:
        if not self.access_token:
            raise AdPlatformError("Meta access token not configured")
        return await self._retry_operation(
            lambda: self._request(method, path, **kwargs),
            operation_name=operation_name,
        )

    async def validate_connection(self) -> bool:
        try:
            await self._call("GET", "me", "validate_connection", params={"fields": "id"})
            return True
        except AdPlatformError as e:
            log.warning(f"Meta Ads connection check failed: {e}")
            return False

    # Insights reports

    async def create_async_report(
        self,
        ad_account_id: str,
        since: date,
        until: date,
        grain: ReportGrain = ReportGrain.AGGREGATE,
    ) -> str:
        data = {
            "fields": ",".join(ADSET_INSIGHT_FIELDS),
            "level": "adset",
            "time_range": json.dumps({"since": since.isoformat(), "until": until.isoformat()}),
            "time_increment": "1" if ReportGrain(grain) == ReportGrain.DAILY else "all_days",
            "filtering": json.dumps([
                {"field": "adset.effective_status", "operator": "IN", "value": ["ACTIVE"]}
            ]),
        }
        payload = await self._call(
            "POST", f"{account_path(ad_account_id)}/insights", "create_async_report", data=data
        )
        report_run_id = payload.get("report_run_id")
        if not report_run_id:
            raise AdPlatformError(f"Insights report not created for {ad_account_id}: {payload}")
        log.info(f"Created insights report {report_run_id} for {ad_account_id} ({since} to {until})")
        return str(report_run_id)

    async def poll_report_status(self, report_run_id: str) -> Dict[str, Any]:
        status: Dict[str, Any] = {}
        for attempt in range(1, self.poll_max_attempts + 1):
            try:
                status = await self._fetch_report_status(report_run_id)
            except AdPlatformError as e:
                if not e.retryable and not is_retryable_status(e.status):
                    raise
                log.warning(f"Polling report {report_run_id} (attempt {attempt}) failed: {e}")
            else:
                async_status = status.get("async_status")
                if async_status == REPORT_COMPLETED:
                    return status
                if async_status in REPORT_FAILED_STATUSES:
                    raise ReportFailedError(report_run_id, async_status)
                log.debug(
                    f"Report {report_run_id}: {async_status} "
                    f"({status.get('async_percent_completion', 0)}%)"
                )

            if attempt < self.poll_max_attempts:
                await asyncio.sleep(self.poll_interval)

        raise ReportNotReadyError(
            report_run_id, self.poll_max_attempts, status.get("async_percent_completion")
        )

    async def _fetch_report_status(self, report_run_id: str) -> Dict[str, Any]:
        return await self._call(
            "GET", report_run_id, "poll_report_status",
            params={"fields": "id,async_status,async_percent_completion"},
        )

    def get_report_file_url(self, report_run_id: str) -> str:
        return f"{self.export_url}?report_run_id={report_run_id}&format=csv&locale=en_US"

    async def stream_report(self, file_url: str) -> AsyncIterator[bytes]:
        timeout = aiohttp.ClientTimeout(total=settings.report_download_timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(file_url, params={"access_token": self.access_token}) as response:
                if response.status != 200:
                    raise AdPlatformError(
                        "Report download failed", status=response.status,
                        retryable=is_retryable_status(response.status),
                    )
                async for chunk in response.content.iter_chunked(STREAM_CHUNK_SIZE):
                    yield chunk

    # Budgets

    async def update_budget(
        self,
        entity_type: SuggestionType,
        entity_id: str,
        new_budget: float,
        currency: Optional[str] = None,
    ) -> bool:
        minor = to_minor_units(new_budget, currency)
        payload = await self._call(
            "POST", entity_id, "update_budget", data={"daily_budget": str(minor)}
        )
        if not payload.get("success"):
            raise AdPlatformError(f"Budget update for {entity_type} {entity_id} not acknowledged: {payload}")
        log.info(f"Updated {SuggestionType(entity_type).value} {entity_id} daily budget to {new_budget} {currency or ''}".rstrip())
        return True

    # Metadata

    async def fetch_ad_account(self, ad_account_id: str) -> Dict[str, Any]:
        return await self._call(
            "GET", account_path(ad_account_id), "fetch_ad_account", params={"fields": ACCOUNT_FIELDS}
        )

    async def _fetch_all_pages(self, path: str, params: Dict, operation_name: str) -> List[Dict]:
        rows: List[Dict] = []
        payload = await self._call("GET", path, operation_name, params=params)
        while True:
            rows.extend(payload.get("data") or [])
            next_url = (payload.get("paging") or {}).get("next")
            if not next_url:
                return rows
            # The next link already carries every query parameter
            payload = await self._call("GET", next_url, operation_name)

    async def fetch_adsets(self, ad_account_id: str, currency: Optional[str] = None) -> List[EntitySnapshot]:
        rows = await self._fetch_all_pages(
            f"{account_path(ad_account_id)}/adsets",
            {"fields": ADSET_FIELDS, "limit": 500},
            "fetch_adsets",
        )
        return [adset_snapshot(row, ad_account_id, currency) for row in rows]

    async def fetch_campaigns(self, ad_account_id: str, currency: Optional[str] = None) -> List[EntitySnapshot]:
        rows = await self._fetch_all_pages(
            f"{account_path(ad_account_id)}/campaigns",
            {"fields": CAMPAIGN_FIELDS, "limit": 500},
            "fetch_campaigns",
        )
        return [campaign_snapshot(row, ad_account_id, currency) for row in rows]
