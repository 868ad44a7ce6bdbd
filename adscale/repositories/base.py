"""
Storage capabilities the pipelines depend on.

The pipelines only talk to these interfaces. The SQLAlchemy implementations
live next to this module; tests use in-memory ones.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Generic, List, Optional, Sequence, TypeVar

from adscale.services.record_mapper import PerformanceRecord
from adscale.services.suggestion_lifecycle import ScaleTarget, SuggestionData, SuggestionStatus, SuggestionType
from adscale.services.threshold_analyzer import ThresholdConfig

T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    items: List[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20

    @property
    def pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size if self.page_size else 0


@dataclass(frozen=True)
class AdAccountInfo:
    ad_account_id: str
    name: Optional[str] = None
    currency: Optional[str] = None
    is_active: bool = True
    last_sync_at: Optional[datetime] = None


@dataclass(frozen=True)
class EntitySnapshot:
    """Ad set or campaign metadata as fetched from the platform."""
    type: SuggestionType
    entity_id: str
    ad_account_id: str
    name: Optional[str] = None
    campaign_id: Optional[str] = None
    campaign_name: Optional[str] = None
    status: Optional[str] = None
    daily_budget: Optional[float] = None
    lifetime_budget: Optional[float] = None
    currency: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    updated_time: Optional[datetime] = None


class PerformanceRepository(ABC):

    @abstractmethod
    def save_batch(self, records: Sequence[PerformanceRecord]) -> Dict[str, int]:
        """Upsert by (ad_account_id, adset_id, grain_key)."""

    @abstractmethod
    def find_latest_by_adset(self, ad_account_id: str, adset_id: str) -> Optional[PerformanceRecord]:
        pass

    @abstractmethod
    def find_all_by_adset(self, ad_account_id: str, adset_id: str) -> List[PerformanceRecord]:
        pass

    @abstractmethod
    def find_all_by_campaign(self, ad_account_id: str, campaign_id: str) -> List[PerformanceRecord]:
        pass


class SuggestionRepository(ABC):

    @abstractmethod
    def find_by_id(self, suggestion_id: int) -> Optional[SuggestionData]:
        pass

    @abstractmethod
    def find_pending_by_entity(self, suggestion_type: SuggestionType, entity_id: str) -> List[SuggestionData]:
        """Pending suggestions for one entity, most recent first."""

    @abstractmethod
    def save(self, suggestion: SuggestionData) -> SuggestionData:
        """Insert (no id) or update (id set); returns the stored value."""

    @abstractmethod
    def delete_bulk(self, suggestion_ids: Sequence[int]) -> int:
        pass

    @abstractmethod
    def find_by_status(
        self,
        suggestion_type: SuggestionType,
        status: SuggestionStatus,
        page: int = 1,
        page_size: int = 20,
    ) -> Page[SuggestionData]:
        pass

    @abstractmethod
    def find_by_entity_and_status(
        self,
        suggestion_type: SuggestionType,
        entity_id: str,
        status: SuggestionStatus,
        page: int = 1,
        page_size: int = 20,
    ) -> Page[SuggestionData]:
        pass


class ThresholdConfigStore(ABC):

    @abstractmethod
    def find_by_account(self, ad_account_id: str) -> Optional[ThresholdConfig]:
        pass

    @abstractmethod
    def save(self, config: ThresholdConfig) -> ThresholdConfig:
        pass


class EntityRepository(ABC):

    @abstractmethod
    def find_eligible(self, suggestion_type: SuggestionType, ad_account_id: Optional[str] = None) -> List[ScaleTarget]:
        """Active entities with a usable daily budget."""

    @abstractmethod
    def find_by_id(self, suggestion_type: SuggestionType, entity_id: str) -> Optional[ScaleTarget]:
        pass

    @abstractmethod
    def mark_scaled(
        self,
        suggestion_type: SuggestionType,
        entity_id: str,
        scaled_at: datetime,
        new_daily_budget: Optional[float] = None,
    ) -> bool:
        pass

    @abstractmethod
    def save_snapshots(self, snapshots: Sequence[EntitySnapshot]) -> Dict[str, int]:
        """Upsert platform metadata, never touching last_scaled_at."""


class AdAccountRepository(ABC):

    @abstractmethod
    def find_active(self) -> List[AdAccountInfo]:
        pass

    @abstractmethod
    def find_by_id(self, ad_account_id: str) -> Optional[AdAccountInfo]:
        pass

    @abstractmethod
    def mark_synced(self, ad_account_id: str, synced_at: datetime) -> None:
        pass

    @abstractmethod
    def mark_entities_synced(self, ad_account_id: str, synced_at: datetime) -> None:
        pass

    @abstractmethod
    def save(self, account: AdAccountInfo) -> AdAccountInfo:
        """Upsert name, currency and active flag."""
