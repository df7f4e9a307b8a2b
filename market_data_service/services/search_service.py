"""
代码搜索服务
通过上游搜索接口查找代码，非空结果写入缓存
"""

import logging
from typing import List, Optional

from market_data_service.layers.acquisition import AcquisitionLayer, get_acquisition_layer
from market_data_service.layers.cache import CacheLayer, get_cache_layer
from market_data_service.models.market import SearchMatch

logger = logging.getLogger(__name__)

_SEARCH_CACHE_NS = "search"


class SearchService:
    """代码搜索服务"""

    def __init__(
        self,
        acquisition: Optional[AcquisitionLayer] = None,
        cache: Optional[CacheLayer] = None,
    ):
        self._acq = acquisition if acquisition is not None else get_acquisition_layer()
        self._cache = cache if cache is not None else get_cache_layer()

    async def search(self, query: str) -> List[SearchMatch]:
        keyword = (query or "").strip()
        if not keyword:
            return []

        cached = await self._cache.get(_SEARCH_CACHE_NS, keyword.lower())
        if cached is not None:
            return cached

        matches = await self._acq.search(keyword)
        if matches:
            await self._cache.set(matches, _SEARCH_CACHE_NS, keyword.lower())
        return matches


# ── 模块级别单例 ──────────────────────────────────────────
_search_service: Optional[SearchService] = None


def get_search_service() -> SearchService:
    global _search_service
    if _search_service is None:
        _search_service = SearchService()
    return _search_service
