"""
Ad platform capability interface

Everything the pipelines need from Meta (or a test double standing in for
it). Budgets crossing this interface are in the account currency's major
unit; converting to the platform's minor units is the client's job.
"""
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, AsyncIterator, Dict, List, Optional

from adscale.repositories.base import EntitySnapshot
from adscale.services.record_mapper import ReportGrain
from adscale.services.suggestion_lifecycle import SuggestionType


class AdPlatformClient(ABC):

    @abstractmethod
    async def create_async_report(
        self,
        ad_account_id: str,
        since: date,
        until: date,
        grain: ReportGrain = ReportGrain.AGGREGATE,
    ) -> str:
        """Start an async insights report; returns its report run id."""

    @abstractmethod
    async def poll_report_status(self, report_run_id: str) -> Dict[str, Any]:
        """Wait until the report completes.

        Raises ReportFailedError when the platform gives up on it and
        ReportNotReadyError when it is still running after the poll budget.
        """

    @abstractmethod
    def get_report_file_url(self, report_run_id: str) -> str:
        """Download URL of a completed report (without credentials)."""

    @abstractmethod
    def stream_report(self, file_url: str) -> AsyncIterator[bytes]:
        """Yield the report file in chunks as it downloads."""

    @abstractmethod
    async def update_budget(
        self,
        entity_type: SuggestionType,
        entity_id: str,
        new_budget: float,
        currency: Optional[str] = None,
    ) -> bool:
        pass

    @abstractmethod
    async def fetch_ad_account(self, ad_account_id: str) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def fetch_adsets(self, ad_account_id: str, currency: Optional[str] = None) -> List[EntitySnapshot]:
        pass

    @abstractmethod
    async def fetch_campaigns(self, ad_account_id: str, currency: Optional[str] = None) -> List[EntitySnapshot]:
        pass
