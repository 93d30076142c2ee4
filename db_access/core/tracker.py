"""
查询跟踪模块

QueryTracker 记录每一次语句执行（成功或失败）：
- 查询计数器
- 最近一条 QueryLogEntry
- 事务期间从事务开始起的完整有序日志

跟踪器由每个管理器实例持有；需要跨实例汇总时显式注入同一个跟踪器。
"""

import itertools
from dataclasses import dataclass
from typing import List, Optional

from ..utils.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class QueryLogEntry:
    """
    一条执行记录

    Attributes:
        rendered_text (str): 代入参数后的语句文本（仅用于调试）
        ordinal (int): 跟踪器内单调递增的序号
    """

    rendered_text: str
    ordinal: int


class QueryTracker:
    """
    查询计数与日志

    Example:
        >>> tracker = QueryTracker()
        >>> tracker.record("SELECT 1")
        QueryLogEntry(rendered_text='SELECT 1', ordinal=1)
        >>> tracker.query_count
        1
    """

    def __init__(self) -> None:
        self._ordinals = itertools.count(1)
        self._count = 0
        self._last: Optional[QueryLogEntry] = None

    def record(self, rendered_text: str) -> QueryLogEntry:
        """记录一次执行并递增计数器"""
        entry = QueryLogEntry(rendered_text, next(self._ordinals))
        self._count += 1
        self._last = entry
        logger.debug(f"[#{entry.ordinal}] {rendered_text}")
        return entry

    @property
    def query_count(self) -> int:
        return self._count

    @property
    def last_entry(self) -> Optional[QueryLogEntry]:
        return self._last

    @staticmethod
    def dump(entries: List[QueryLogEntry]) -> str:
        """将多条记录渲染为以分号结尾、逐行排列的文本"""
        return "\n".join(f"{entry.rendered_text.rstrip().rstrip(';')};" for entry in entries)

    def __repr__(self) -> str:
        return f"QueryTracker(query_count={self._count})"
