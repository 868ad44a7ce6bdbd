"""Ad platform connectors"""
from adscale.connectors.base import AdPlatformClient
from adscale.connectors.meta_ads import MetaAdsConnector

__all__ = ["AdPlatformClient", "MetaAdsConnector"]
