"""
流式游标模块

StreamingCursor 逐行读取一条语句的结果，不在内存中缓存整个结果集。
每个连接同一时刻只允许一个游标；游标只在创建它的连接上有效。
"""

from enum import Enum
from typing import Any, Dict, Optional, Union

from ..utils.logging_utils import get_logger
from .connections import ConnectionManager
from .exceptions import InvalidCursorError
from .results import FetchMode, shape_row

logger = get_logger(__name__)


class CursorState(Enum):
    OPEN = "open"
    EXHAUSTED = "exhausted"
    DISCARDED = "discarded"


class StreamingCursor:
    """
    绑定到单条执行中语句的游标

    Attributes:
        connection_identity (int): 创建游标时的连接标识
        state (CursorState): 游标状态
    """

    def __init__(
        self,
        connections: ConnectionManager,
        connection_identity: int,
        result: Any,
        fetch_mode: FetchMode = FetchMode.MAPPING,
        fetch_args: Any = None,
    ) -> None:
        self.connections = connections
        self.connection_identity = connection_identity
        self.fetch_mode = fetch_mode
        self.fetch_args = fetch_args
        self.state = CursorState.OPEN
        self._result = result

    def _owner_is_current(self) -> bool:
        current = self.connections.current
        return current is not None and current.identity == self.connection_identity

    def next(self, fetch_mode: Optional[FetchMode] = None) -> Union[Any, bool]:
        """
        读取下一行

        Args:
            fetch_mode: 本次读取使用的行形式，默认为创建游标时的形式

        Returns:
            下一行，结果耗尽时返回 False

        Raises:
            InvalidCursorError: 游标已被丢弃或所属连接已被替换
        """
        if self.state is CursorState.DISCARDED:
            raise InvalidCursorError("游标已被新的 query_loop 取代")
        if not self._owner_is_current():
            self.state = CursorState.DISCARDED
            self._result = None
            raise InvalidCursorError("游标所属的连接已被关闭或替换")
        if self.state is CursorState.EXHAUSTED:
            return False

        row = self._next_row()
        if row is None:
            return False
        return shape_row(row, fetch_mode or self.fetch_mode, self.fetch_args)

    def _next_row(self) -> Optional[Dict[str, Any]]:
        handle = self.connections.current.handle
        try:
            row = handle.fetch_row(self._result)
        except Exception:
            self._release()
            self.state = CursorState.DISCARDED
            raise
        if row is None:
            self._release()
            self.state = CursorState.EXHAUSTED
            logger.debug("流式游标已读取完毕")
        return row

    def discard(self) -> None:
        """丢弃游标并释放结果"""
        if self.state is CursorState.OPEN:
            self._release()
        self.state = CursorState.DISCARDED

    def _release(self) -> None:
        result, self._result = self._result, None
        # 连接已替换时旧结果随旧连接一起释放
        if result is not None and self._owner_is_current():
            self.connections.current.handle.finish(result)

    def __iter__(self):
        while True:
            row = self.next()
            if row is False and self.state is not CursorState.OPEN:
                return
            yield row

    def __repr__(self) -> str:
        return f"StreamingCursor(connection={self.connection_identity}, state={self.state.value})"
