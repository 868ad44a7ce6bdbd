"""
Suggestion notifications

Posts newly created suggestions to a Slack webhook, grouped by ad account.
Delivery is best-effort: notify() reports failure through its DeliveryResult
and never raises into the analysis cycle.
"""
import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import aiohttp

from adscale.config import get_settings
from adscale.services.suggestion_lifecycle import SuggestionData, SuggestionType
from adscale.utils.logger import log
from adscale.utils.retry import calculate_backoff, is_retryable_error

settings = get_settings()

MAX_LINES_PER_ACCOUNT = 20


@dataclass
class DeliveryResult:
    """Tracks delivery attempt results for auditing."""
    success: bool = False
    channel: str = ""
    attempts: int = 0
    total_delay_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)
    final_error: Optional[str] = None


class NotificationSink(ABC):

    @abstractmethod
    async def notify(self, suggestions: Sequence[SuggestionData]) -> DeliveryResult:
        pass


def _format_line(s: SuggestionData) -> str:
    name = s.adset_name if s.type == SuggestionType.ADSET else s.campaign_name
    metrics = ", ".join(f"{m.metric_name}={m.value:.4g}" for m in s.metrics)
    currency = f" {s.currency}" if s.currency else ""
    line = f"• {name or s.entity_id}: {s.budget:,.2f} -> {s.budget_after_scale:,.2f}{currency} ({metrics})"
    if s.adset_link:
        line += f" <{s.adset_link}|open>"
    return line


def build_message(suggestions: Sequence[SuggestionData], frontend_url: Optional[str] = None) -> str:
    """Plain-text summary, ad sets and campaigns grouped by ad account name."""
    sections: Dict[str, Dict[str, List[str]]] = defaultdict(lambda: defaultdict(list))
    for s in suggestions:
        account = s.ad_account_name or s.ad_account_id
        sections[account][s.type.value].append(_format_line(s))

    lines = [f"*{len(suggestions)} new budget scale suggestion(s)*"]
    for account in sorted(sections):
        lines.append("")
        lines.append(f"*{account}*")
        for kind, label in (("adset", "Ad sets"), ("campaign", "Campaigns")):
            entries = sections[account].get(kind)
            if not entries:
                continue
            lines.append(f"_{label}_")
            lines.extend(entries[:MAX_LINES_PER_ACCOUNT])
            if len(entries) > MAX_LINES_PER_ACCOUNT:
                lines.append(f"…and {len(entries) - MAX_LINES_PER_ACCOUNT} more")

    if frontend_url:
        lines.append("")
        lines.append(f"Review: {frontend_url.rstrip('/')}/suggestions")
    return "\n".join(lines)


class SlackSuggestionNotifier(NotificationSink):
    """Slack incoming-webhook delivery with retry."""

    RETRY_MAX_ATTEMPTS = 3
    RETRY_BASE_DELAY = 2.0  # seconds
    RETRY_MAX_DELAY = 30.0  # seconds

    def __init__(self, webhook_url: Optional[str] = None, frontend_url: Optional[str] = None):
        self.webhook_url = webhook_url if webhook_url is not None else settings.slack_webhook_url
        self.frontend_url = frontend_url if frontend_url is not None else settings.frontend_url

    @property
    def configured(self) -> bool:
        return bool(self.webhook_url)

    async def notify(self, suggestions: Sequence[SuggestionData]) -> DeliveryResult:
        result = DeliveryResult(channel="slack")

        if not suggestions:
            result.success = True
            return result

        if not self.configured:
            log.info("Slack not configured, skipping suggestion notification")
            result.final_error = "Slack not configured"
            return result

        payload = {
            "text": build_message(suggestions, self.frontend_url),
            "attachments": [{
                "footer": settings.app_name,
                "ts": int(datetime.utcnow().timestamp()),
            }],
        }

        for attempt in range(1, self.RETRY_MAX_ATTEMPTS + 1):
            result.attempts = attempt
            try:
                async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30)) as session:
                    async with session.post(self.webhook_url, json=payload) as response:
                        if response.status == 200:
                            result.success = True
                            log.info(f"Slack notification sent for {len(suggestions)} suggestions")
                            return result

                        error_str = f"HTTP {response.status}"
                        result.errors.append(error_str)
                        # 429 and 5xx are worth another try, other 4xx are not
                        if response.status != 429 and response.status < 500:
                            result.final_error = error_str
                            log.error(f"Slack notification rejected with status {response.status}")
                            return result

            except Exception as e:
                error_str = f"{type(e).__name__}: {str(e)}"
                result.errors.append(error_str)
                if not (is_retryable_error(e) or isinstance(e, aiohttp.ClientError)):
                    result.final_error = error_str
                    log.error(f"Slack notification failed: {error_str}")
                    return result

            if attempt >= self.RETRY_MAX_ATTEMPTS:
                break

            delay = calculate_backoff(attempt, base_delay=self.RETRY_BASE_DELAY, max_delay=self.RETRY_MAX_DELAY)
            result.total_delay_seconds += delay
            log.warning(f"Slack attempt {attempt} failed: {result.errors[-1]}. Retrying in {delay:.1f}s...")
            await asyncio.sleep(delay)

        result.final_error = result.errors[-1] if result.errors else "Retry exhausted"
        log.error(f"Slack notification failed after {result.attempts} attempts: {result.final_error}")
        return result
