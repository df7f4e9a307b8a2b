"""
Layer 2 – 缓存层
进程内短 TTL 缓存，按 (symbol, range, interval) 记忆已校验的上游结果。
过期在读取时惰性判断，不做后台清理；失败结果不缓存。
"""

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from market_data_service.config import settings

logger = logging.getLogger(__name__)

CHART_NAMESPACE = "chart"


def _make_key(namespace: str, *parts: str) -> str:
    """生成规范化缓存键"""
    raw = ":".join([namespace] + list(parts))
    if len(raw) > 200:
        raw = namespace + ":" + hashlib.md5(raw.encode()).hexdigest()
    return raw


@dataclass
class CacheEntry:
    key: str
    payload: Any
    inserted_at: float


class CacheLayer:
    """内存缓存层：并发写同一键时后写覆盖先写"""

    def __init__(self, ttl: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl if ttl is not None else settings.CACHE_TTL
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    @property
    def ttl(self) -> int:
        return self._ttl

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.inserted_at < self._ttl

    async def get(self, namespace: str, *parts: str) -> Optional[Any]:
        key = _make_key(namespace, *parts)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not self._is_fresh(entry):
            logger.debug(f"缓存已过期: {key}")
            return None
        logger.debug(f"缓存命中: {key}")
        return entry.payload

    async def set(self, value: Any, namespace: str, *parts: str) -> None:
        key = _make_key(namespace, *parts)
        self._entries[key] = CacheEntry(key=key, payload=value, inserted_at=self._clock())
        logger.debug(f"缓存写入: {key}")

    async def delete(self, namespace: str, *parts: str) -> bool:
        key = _make_key(namespace, *parts)
        return self._entries.pop(key, None) is not None

    async def clear(self, namespace: Optional[str] = None) -> int:
        """清理全部条目或指定命名空间，返回删除数量"""
        if namespace is None:
            count = len(self._entries)
            self._entries.clear()
            return count
        prefix = namespace + ":"
        keys = [k for k in self._entries if k.startswith(prefix)]
        for k in keys:
            del self._entries[k]
        return len(keys)

    async def stats(self) -> dict:
        live = sum(1 for e in self._entries.values() if self._is_fresh(e))
        return {
            "entries": len(self._entries),
            "live": live,
            "expired": len(self._entries) - live,
            "ttl": self._ttl,
        }


# ── 模块级别单例 ──────────────────────────────────────────
_cache: Optional[CacheLayer] = None


def get_cache_layer() -> CacheLayer:
    global _cache
    if _cache is None:
        _cache = CacheLayer()
    return _cache
