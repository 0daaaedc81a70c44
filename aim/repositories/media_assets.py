"""
Media asset registry.

Keeps the `MediaAsset` record (variant map + original extension) per asset
id so streaming can resolve variants and deletes rebuild the exact keys that
were written. The relational song store lives elsewhere; this is the narrow
get/set/delete surface the music routes need.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Optional, Protocol

from aim.schemas.media import MediaAsset


class MediaAssetRepository(Protocol):
    async def get(self, asset_id: str) -> Optional[MediaAsset]: ...

    async def set(self, asset: MediaAsset) -> None: ...

    async def delete(self, asset_id: str) -> Optional[MediaAsset]: ...


class InMemoryMediaAssetRepository:
    """Process-local registry; safe for concurrent requests on one event loop."""

    def __init__(self) -> None:
        self._items: Dict[str, MediaAsset] = {}
        self._lock = asyncio.Lock()

    async def get(self, asset_id: str) -> Optional[MediaAsset]:
        async with self._lock:
            return self._items.get(asset_id)

    async def set(self, asset: MediaAsset) -> None:
        async with self._lock:
            self._items[asset.asset_id] = asset

    async def delete(self, asset_id: str) -> Optional[MediaAsset]:
        async with self._lock:
            return self._items.pop(asset_id, None)

    def __len__(self) -> int:
        return len(self._items)
