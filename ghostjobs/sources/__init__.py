"""Source adapters and URL routing."""

from typing import List, Optional

from .base import AdapterJob, CompositeKey, PostingFeatures, SourceAdapter
from .greenhouse import GreenhouseAdapter
from .web import WebPageAdapter

TRACKABLE_PROVIDERS = {"greenhouse"}


class SourceRegistry:
    """Routes a URL to the first adapter that handles it."""

    def __init__(self, adapters: List[SourceAdapter]):
        self.adapters = adapters

    @classmethod
    def default(cls, timeout: int = 15) -> "SourceRegistry":
        return cls([GreenhouseAdapter(timeout=timeout), WebPageAdapter(timeout=timeout)])

    def adapter_for(self, url: str) -> Optional[SourceAdapter]:
        for adapter in self.adapters:
            if adapter.handles(url):
                return adapter
        return None

    def composite_key(self, url: str) -> Optional[CompositeKey]:
        """Key for URLs of trackable sources; None for everything else."""
        adapter = self.adapter_for(url)
        if adapter is None or not adapter.trackable:
            return None
        return adapter.composite_key(url)

    def fetch(self, url: str) -> Optional[AdapterJob]:
        adapter = self.adapter_for(url)
        if adapter is None:
            return None
        return adapter.fetch(url)


def is_trackable(provider: str) -> bool:
    return provider in TRACKABLE_PROVIDERS


__all__ = [
    "AdapterJob",
    "CompositeKey",
    "GreenhouseAdapter",
    "PostingFeatures",
    "SourceAdapter",
    "SourceRegistry",
    "TRACKABLE_PROVIDERS",
    "WebPageAdapter",
    "is_trackable",
]
