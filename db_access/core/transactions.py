"""
事务管理模块

状态机: Idle -> Active -> {Committed, RolledBack} -> Idle

- start(): 仅允许在 Idle 状态下调用，事务不可嵌套
- commit(): 仅允许在 Active 状态下调用，否则抛出 TransactionError
- rollback(): Idle 状态下返回 False 且不调用驱动；Active 状态下回滚并返回 True
- 事务期间执行的每条语句都会追加到事务日志，提交或回滚后日志保留到下一条语句执行
"""

from enum import Enum
from typing import List, Optional

from ..utils.logging_utils import get_logger
from .connections import Connection, ConnectionManager
from .exceptions import TransactionError
from .tracker import QueryLogEntry, QueryTracker

logger = get_logger(__name__)


class TransactionState(Enum):
    IDLE = "idle"
    ACTIVE = "active"


class TransactionOutcome(Enum):
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class IsolationIntent(Enum):
    """隔离级别意图，value 为对应的 SQL 隔离级别名称"""

    NONE = None
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"

    @classmethod
    def from_flag(cls, isolation: Optional[bool]) -> "IsolationIntent":
        """True 表示读已提交，False 表示可重复读，None 保留驱动默认值"""
        if isolation is None:
            return cls.NONE
        return cls.READ_COMMITTED if isolation else cls.REPEATABLE_READ


class TransactionManager:
    """
    事务状态与事务日志

    Attributes:
        state (TransactionState): 当前状态
        isolation (IsolationIntent): 当前或最近一次事务的隔离级别意图
        last_outcome (Optional[TransactionOutcome]): 最近一次事务的结束方式
    """

    def __init__(self, connections: ConnectionManager, tracker: QueryTracker) -> None:
        self.connections = connections
        self.tracker = tracker
        self.state = TransactionState.IDLE
        self.isolation = IsolationIntent.NONE
        self.last_outcome: Optional[TransactionOutcome] = None
        self._entries: List[QueryLogEntry] = []
        # 事务结束后，在下一条语句执行之前 get_last() 仍返回整个事务日志
        self._retained = False
        self._connection_identity: Optional[int] = None
        connections.add_release_listener(self._on_connection_released)

    @property
    def is_active(self) -> bool:
        return self.state is TransactionState.ACTIVE

    @property
    def entries(self) -> List[QueryLogEntry]:
        return list(self._entries)

    def start(self, isolation: Optional[bool] = None) -> None:
        """
        开始事务

        Args:
            isolation: True 为读已提交，False 为可重复读，None 使用驱动默认隔离级别

        Raises:
            TransactionError: 已有活动事务时
        """
        if self.is_active:
            raise TransactionError("事务不能嵌套，当前已有活动事务")

        intent = IsolationIntent.from_flag(isolation)
        connection = self.connections.get_connection()
        connection.handle.begin(intent.value)

        self.state = TransactionState.ACTIVE
        self.isolation = intent
        self.last_outcome = None
        self._entries = []
        self._retained = False
        self._connection_identity = connection.identity
        logger.info(f"事务已开始 (隔离级别: {intent.value or '默认'})")

    def commit(self) -> None:
        """
        提交事务

        Raises:
            TransactionError: 没有活动事务时
            ExecutionError: 驱动提交失败时（事务按回滚处理）
        """
        if not self.is_active:
            raise TransactionError("没有活动事务，无法提交")

        connection = self._active_connection()
        try:
            connection.handle.commit()
        except Exception:
            self._close(TransactionOutcome.ROLLED_BACK)
            logger.error("事务提交失败，未提交的更改已丢弃")
            raise
        self._close(TransactionOutcome.COMMITTED)
        logger.info(f"事务已提交，共 {len(self._entries)} 条语句")

    def rollback(self) -> bool:
        """
        回滚事务

        Returns:
            bool: 没有活动事务时返回 False（不调用驱动），否则返回 True
        """
        if not self.is_active:
            return False

        connection = self._active_connection()
        try:
            connection.handle.rollback()
        finally:
            self._close(TransactionOutcome.ROLLED_BACK)
        logger.info(f"事务已回滚，共 {len(self._entries)} 条语句")
        return True

    def _active_connection(self) -> Connection:
        connection = self.connections.current
        if connection is None or connection.identity != self._connection_identity:
            self._close(TransactionOutcome.ROLLED_BACK)
            raise TransactionError("事务所属的连接已被关闭或替换")
        return connection

    def _close(self, outcome: TransactionOutcome) -> None:
        self.state = TransactionState.IDLE
        self.last_outcome = outcome
        self._retained = True
        self._connection_identity = None

    def observe(self, entry: QueryLogEntry) -> None:
        """记录一条已执行的语句，事务外的语句会结束对上一个事务日志的保留"""
        if self.is_active:
            self._entries.append(entry)
        else:
            self._retained = False

    def get_last(self) -> str:
        """
        返回最近执行内容的文本

        事务进行中或刚刚结束时返回整个事务日志，否则只返回最近一条语句。
        """
        if self.is_active or self._retained:
            return QueryTracker.dump(self._entries)
        last = self.tracker.last_entry
        return QueryTracker.dump([last]) if last else ""

    def _on_connection_released(self, connection: Connection) -> None:
        # 连接关闭时驱动会丢弃未提交的事务
        if self.is_active and connection.identity == self._connection_identity:
            logger.warning("连接关闭时事务仍处于活动状态，未提交的更改已丢弃")
            self._close(TransactionOutcome.ROLLED_BACK)
