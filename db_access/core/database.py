"""
数据库访问管理模块

DatabaseManager 组合连接管理、查询引擎、流式游标、事务管理与查询跟踪，
对外提供完整的数据库访问接口。
"""

from typing import Any, Dict, Iterable, List, Optional, TextIO, Union

from ..drivers.base import DatabaseDriver
from ..drivers.sqlalchemy_driver import SQLAlchemyDriver
from ..utils.logging_utils import get_logger
from .catalog import CatalogCache
from .config import ConfigScope
from .connections import Connection, ConnectionManager
from .cursor import StreamingCursor
from .engine import FetchMode, PreparedStatement, QueryEngine, Statement
from .results import QueryResult
from .servers import ServerDescriptor, ServerPool
from .tracker import QueryTracker
from .transactions import TransactionManager

logger = get_logger(__name__)


class DatabaseManager:
    """
    数据库访问管理器

    每个实例在任意时刻至多持有一个活动连接，实例不是线程安全的，
    多线程使用时需要在外部串行化。

    Example:
        >>> servers = [ServerDescriptor("primary", database="/data/app.db")]
        >>> with DatabaseManager(servers, SQLAlchemyDriver("sqlite")) as db:
        ...     user_id = db.query("INSERT INTO users (firstname, lastname) VALUES (?, ?)", ["John", "Doe"])
        ...     db.query_row("SELECT firstname, lastname FROM users WHERE user_id = ?", user_id)
        {'firstname': 'John', 'lastname': 'Doe'}
    """

    def __init__(
        self,
        servers: Union[ServerPool, Iterable[ServerDescriptor]],
        driver: Optional[DatabaseDriver] = None,
        persistent: bool = False,
        tracker: Optional[QueryTracker] = None,
        legacy_auto_escape: bool = False,
        silent_errors_default: bool = False,
    ) -> None:
        """
        初始化数据库访问管理器（不会立即连接）

        Args:
            servers: 候选服务器，按故障转移顺序排列
            driver: 数据库驱动，默认使用 SQLite 的 SQLAlchemyDriver
            persistent: 是否使用持久连接
            tracker: 查询跟踪器，多个管理器需要汇总计数时传入同一个实例
            legacy_auto_escape: 旧式自动转义兼容模式
            silent_errors_default: 每个新连接建立后的静默错误模式
        """
        self.driver = driver or SQLAlchemyDriver()
        self.tracker = tracker or QueryTracker()
        self.connections = ConnectionManager(
            self.driver, servers, persistent, silent_errors_default
        )
        self.transactions = TransactionManager(self.connections, self.tracker)
        self.engine = QueryEngine(
            self.connections,
            self.tracker,
            self.transactions,
            CatalogCache(),
            legacy_auto_escape,
        )

    @classmethod
    def from_config(cls, config: ConfigScope, tracker: Optional[QueryTracker] = None) -> "DatabaseManager":
        """
        根据配置创建管理器

        Args:
            config: ConfigManager 或包含 [database] 节的 ConfigScope
            tracker: 可选的共享查询跟踪器
        """
        pool_scope = config.get("database.pool")
        pool_config: Dict[str, Any] = pool_scope.to_dict() if isinstance(pool_scope, ConfigScope) else {}
        driver = SQLAlchemyDriver(
            drivername=str(config.get("database.driver", "sqlite")),
            pool_config=pool_config,
            echo_sql=bool(config.get("database.echo_sql", False)),
        )

        if hasattr(config, "get_servers"):
            servers = config.get_servers()
        else:
            servers = [
                ServerDescriptor.from_dict(raw) for raw in config.get("database.servers", [])
            ]

        manager = cls(
            servers,
            driver,
            persistent=bool(config.get("database.persistent", False)),
            tracker=tracker,
            legacy_auto_escape=bool(config.get("database.legacy_auto_escape", False)),
            silent_errors_default=bool(config.get("database.silent_errors", False)),
        )
        if config.get("database.load_balance", False):
            manager.load_balance()
        return manager

    # ------------------------------------------------------------------
    # 连接
    # ------------------------------------------------------------------

    def connect(self) -> Connection:
        """按当前服务器顺序重新建立连接"""
        return self.connections.connect()

    def connection_exists(self) -> bool:
        return self.connections.connection_exists()

    def silent_errors(self, flag: bool = True) -> None:
        """设置当前连接的静默错误模式，没有连接时不做任何操作"""
        self.connections.silent_errors(flag)

    def load_balance(self) -> None:
        self.connections.load_balance()

    def set_persistent_connection(self, flag: bool) -> None:
        self.connections.set_persistent_connection(flag)

    def close(self) -> None:
        self.connections.close()

    def get_host(self) -> str:
        return self.connections.get_host()

    def get_database_name(self) -> str:
        return self.connections.get_database_name()

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def prepare(self, statement: str, params: Any = None) -> PreparedStatement:
        return self.engine.prepare(statement, params)

    def execute(
        self,
        statement: Statement,
        params: Any = None,
        fetch_mode: FetchMode = FetchMode.MAPPING,
        fetch_args: Any = None,
        fetch_all: bool = True,
    ) -> QueryResult:
        return self.engine.execute(statement, params, fetch_mode, fetch_args, fetch_all)

    def query(
        self,
        statement: Statement,
        params: Any = None,
        fetch_mode: FetchMode = FetchMode.MAPPING,
        fetch_args: Any = None,
        fetch_all: bool = True,
    ) -> Any:
        return self.engine.query(statement, params, fetch_mode, fetch_args, fetch_all)

    def query_row(
        self,
        statement: Statement,
        params: Any = None,
        require_row: bool = True,
        fetch_mode: FetchMode = FetchMode.MAPPING,
        fetch_args: Any = None,
    ) -> Any:
        return self.engine.query_row(statement, params, require_row, fetch_mode, fetch_args)

    def query_column(self, statement: Statement, params: Any = None, column_index: int = 0) -> Any:
        return self.engine.query_column(statement, params, column_index)

    def query_loop(
        self,
        statement: Statement,
        params: Any = None,
        fetch_mode: FetchMode = FetchMode.MAPPING,
        fetch_args: Any = None,
    ) -> Union[StreamingCursor, bool]:
        return self.engine.query_loop(statement, params, fetch_mode, fetch_args)

    def query_next(self, fetch_mode: Optional[FetchMode] = None) -> Any:
        return self.engine.query_next(fetch_mode)

    def query_return(self, statement: Statement, params: Any = None, suppress_warning: bool = False) -> str:
        return self.engine.query_return(statement, params, suppress_warning)

    def query_dump(
        self,
        statement: Statement,
        params: Any = None,
        suppress_warning: bool = False,
        stream: Optional[TextIO] = None,
    ) -> str:
        return self.engine.query_dump(statement, params, suppress_warning, stream)

    def statement_return(self, statement: Statement) -> str:
        return self.engine.statement_return(statement)

    def quote_smart(self, value: Any) -> str:
        return self.engine.quote_smart(value)

    # ------------------------------------------------------------------
    # 标识符与元数据
    # ------------------------------------------------------------------

    def escape_identifier(self, name: str, quote: bool = True) -> str:
        return self.engine.escape_identifier(name, quote)

    def enum_values(self, table: str, column: str) -> List[str]:
        return self.engine.enum_values(table, column)

    def get_tables(self) -> List[str]:
        return self.engine.get_tables()

    def get_all_columns(self) -> List[str]:
        return self.engine.get_all_columns()

    def get_table_columns(self, table: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.engine.get_table_columns(table)

    # ------------------------------------------------------------------
    # 事务与跟踪
    # ------------------------------------------------------------------

    def start_transaction(self, isolation: Optional[bool] = None) -> None:
        self.transactions.start(isolation)

    def commit_transaction(self) -> None:
        self.transactions.commit()

    def rollback_transaction(self) -> bool:
        return self.transactions.rollback()

    def get_query_count(self) -> int:
        return self.tracker.query_count

    def get_last(self) -> str:
        return self.transactions.get_last()

    def __enter__(self) -> "DatabaseManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            if self.transactions.is_active:
                if exc_type is None:
                    self.commit_transaction()
                else:
                    self.rollback_transaction()
        finally:
            self.close()

    def __repr__(self) -> str:
        return f"DatabaseManager(host={self.get_host()!r}, queries={self.get_query_count()})"
