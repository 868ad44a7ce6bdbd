"""
Entity Sync Service

Refreshes ad account, ad set and campaign metadata (status, budgets, start
times) from Meta so the analysis cycle works on current budgets. Local scale
history (last_scaled_at) is never overwritten by a sync.
"""
import time
from datetime import datetime
from typing import Any, Dict

from adscale.repositories.base import AdAccountInfo, AdAccountRepository, EntityRepository
from adscale.utils.logger import log


class EntitySyncService:

    def __init__(self, platform, entities: EntityRepository, accounts: AdAccountRepository):
        self.platform = platform
        self.entities = entities
        self.accounts = accounts

    async def sync_account(self, account: AdAccountInfo) -> Dict[str, Any]:
        start = time.time()
        try:
            details = await self.platform.fetch_ad_account(account.ad_account_id)
            currency = details.get("currency") or account.currency
            self.accounts.save(AdAccountInfo(
                ad_account_id=account.ad_account_id,
                name=details.get("name") or account.name,
                currency=currency,
                is_active=account.is_active,
            ))

            adsets = await self.platform.fetch_adsets(account.ad_account_id, currency=currency)
            campaigns = await self.platform.fetch_campaigns(account.ad_account_id, currency=currency)
            counts = self.entities.save_snapshots(list(adsets) + list(campaigns))
            self.accounts.mark_entities_synced(account.ad_account_id, datetime.utcnow())

            log.info(
                f"Entity sync for {account.ad_account_id}: {len(adsets)} ad sets, {len(campaigns)} campaigns "
                f"({counts['created']} created, {counts['updated']} updated)"
            )
            return {
                "success": True,
                "ad_account_id": account.ad_account_id,
                "adsets_synced": len(adsets),
                "campaigns_synced": len(campaigns),
                "duration_seconds": time.time() - start,
            }
        except Exception as e:
            log.error(f"Entity sync for {account.ad_account_id} failed: {e}")
            return {
                "success": False,
                "ad_account_id": account.ad_account_id,
                "error": str(e),
                "duration_seconds": time.time() - start,
            }

    async def sync_all(self) -> Dict[str, Any]:
        summary = {"success": True, "accounts_synced": 0, "adsets_synced": 0, "campaigns_synced": 0, "errors": []}
        for account in self.accounts.find_active():
            result = await self.sync_account(account)
            if result["success"]:
                summary["accounts_synced"] += 1
                summary["adsets_synced"] += result["adsets_synced"]
                summary["campaigns_synced"] += result["campaigns_synced"]
            else:
                summary["errors"].append(f"{account.ad_account_id}: {result['error']}")
        summary["success"] = not summary["errors"]
        return summary
