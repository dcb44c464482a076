"""Karakeep integration: the default bookmark fetch callback."""

from bookmark_sync.adapters.karakeep.client import KarakeepClient, KarakeepClientError
from bookmark_sync.adapters.karakeep.fetcher import KarakeepBookmarkFetcher

__all__ = ["KarakeepBookmarkFetcher", "KarakeepClient", "KarakeepClientError"]
