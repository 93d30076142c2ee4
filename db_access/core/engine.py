"""
查询执行引擎模块

QueryEngine 通过 ConnectionManager 获取（必要时建立）活动连接，展开占位符，
绑定参数并执行语句，再按语句类型返回带标签的结果：

- 读取类语句返回 Rows（零行时为空列表）
- INSERT 返回 LastInsertId
- UPDATE/DELETE/REPLACE 及其他语句返回 AffectedCount
- 静默错误模式下执行失败返回 Failure，并发出 QueryWarning

每次执行（无论成功还是失败）都会记录到 QueryTracker，事务期间同时追加到事务日志。
执行中途连接断开作为执行失败上报，不会自动重试。
"""

import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TextIO, Tuple, Union

from ..utils.logging_utils import get_logger
from .catalog import CatalogCache, IdentifierCatalog
from .connections import Connection, ConnectionManager
from .cursor import StreamingCursor
from .exceptions import ConfigError, ExecutionError, InvalidCursorError, NoRowError, warn_recoverable
from .placeholders import (
    NAMED,
    Params,
    check_prepared_params,
    expand_placeholders,
    is_numeric,
    render_literal,
    render_statement,
)
from .results import (
    AffectedCount,
    Failure,
    FetchMode,
    LastInsertId,
    QueryResult,
    Rows,
    StatementKind,
    classify_statement,
    shape_row,
)
from .tracker import QueryTracker
from .transactions import TransactionManager

logger = get_logger(__name__)

# query_return / query_dump 输出前附加的固定警告
RENDER_WARNING = "-- 警告: 以下语句由参数代入生成，仅供调试参考，可能与驱动实际执行的语句不一致"

__all__ = ["FetchMode", "PreparedStatement", "QueryEngine", "RENDER_WARNING"]


@dataclass
class PreparedStatement:
    """
    可重复执行的预处理语句

    数组展开只在首次 prepare 时进行，复用时参数必须与展开后的占位符一一对应。

    Attributes:
        raw_text (str): 调用方传入的原始语句
        text (str): 展开后的语句
        style (Optional[str]): 占位符风格
        placeholder_count (int): 展开后的占位符数量
        names (List[str]): 命名风格下的参数名
        params (Params): prepare 时绑定的参数
    """

    raw_text: str
    text: str
    style: Optional[str]
    placeholder_count: int
    names: List[str] = field(default_factory=list)
    params: Params = field(default_factory=list)
    driver_statement: Any = field(default=None, repr=False)
    connection_identity: Optional[int] = field(default=None, repr=False)

    @property
    def kind(self) -> StatementKind:
        return classify_statement(self.text)


Statement = Union[str, PreparedStatement]


class QueryEngine:
    """
    查询执行引擎

    Attributes:
        connections (ConnectionManager): 连接管理器
        tracker (QueryTracker): 执行记录
        transactions (TransactionManager): 事务管理器
        catalogs (CatalogCache): 标识符目录缓存
        legacy_auto_escape (bool): 旧式自动转义兼容模式，开启时 quote_smart 拒绝执行
    """

    def __init__(
        self,
        connections: ConnectionManager,
        tracker: QueryTracker,
        transactions: TransactionManager,
        catalogs: Optional[CatalogCache] = None,
        legacy_auto_escape: bool = False,
    ) -> None:
        self.connections = connections
        self.tracker = tracker
        self.transactions = transactions
        self.catalogs = catalogs or CatalogCache()
        self.legacy_auto_escape = legacy_auto_escape
        self._cursor: Optional[StreamingCursor] = None
        connections.add_release_listener(self.catalogs.invalidate)

    # ------------------------------------------------------------------
    # 语句准备与绑定
    # ------------------------------------------------------------------

    def prepare(self, statement: str, params: Any = None) -> PreparedStatement:
        """
        展开占位符并预处理语句

        Args:
            statement: 语句文本
            params: 参数列表、命名参数映射或单个标量

        Returns:
            PreparedStatement: 可重复执行的预处理语句

        Raises:
            BindingError: 占位符与参数不匹配时
        """
        connection = self.connections.get_connection()
        expanded = expand_placeholders(statement, params, connection.handle.backslash_escapes)
        if expanded.style == NAMED:
            names = sorted(expanded.params)
            count = len(names)
        else:
            names = []
            count = len(expanded.params)

        return PreparedStatement(
            raw_text=statement,
            text=expanded.text,
            style=expanded.style,
            placeholder_count=count,
            names=names,
            params=expanded.params,
            driver_statement=connection.handle.prepare(expanded.text, expanded.style),
            connection_identity=connection.identity,
        )

    def _bind(self, statement: Statement, params: Any, connection: Connection) -> Tuple[PreparedStatement, Params]:
        if not isinstance(statement, PreparedStatement):
            prepared = self.prepare(statement, params)
            return prepared, prepared.params

        if params is None:
            bound = statement.params
        else:
            bound = check_prepared_params(
                statement.style, statement.placeholder_count, statement.names, params
            )
        if statement.connection_identity != connection.identity:
            # 预处理句柄只在创建它的连接上有效
            statement.driver_statement = connection.handle.prepare(statement.text, statement.style)
            statement.connection_identity = connection.identity
        return statement, bound

    # ------------------------------------------------------------------
    # 执行
    # ------------------------------------------------------------------

    def execute(
        self,
        statement: Statement,
        params: Any = None,
        fetch_mode: FetchMode = FetchMode.MAPPING,
        fetch_args: Any = None,
        fetch_all: bool = True,
    ) -> QueryResult:
        """
        执行语句并返回带标签的结果

        Args:
            statement: 语句文本或 PreparedStatement
            params: 绑定参数
            fetch_mode: 读取类语句的行形式
            fetch_args: FetchMode.COLUMN 时的列序号
            fetch_all: 为 False 时读取类语句只取第一行

        Returns:
            QueryResult: Rows / LastInsertId / AffectedCount / Failure

        Raises:
            ExecutionError: 非静默模式下语句执行失败时
            BindingError: 占位符与参数不匹配时
            ConnectionError: 无法建立连接时
        """
        connection = self.connections.get_connection()
        prepared, bound = self._bind(statement, params, connection)
        handle = connection.handle
        rendered = render_statement(prepared.text, bound, handle.quote, handle.backslash_escapes)
        kind = classify_statement(prepared.text)

        result = None
        try:
            try:
                result = handle.execute(prepared.driver_statement, bound)
                outcome = self._collect(result, handle, kind, fetch_mode, fetch_args, fetch_all)
            finally:
                if result is not None:
                    handle.finish(result)
        except ExecutionError as e:
            outcome = self._fail(connection, e)
        finally:
            self._record(rendered)
        return outcome

    def _collect(self, result, handle, kind, fetch_mode, fetch_args, fetch_all) -> QueryResult:
        if kind is StatementKind.READ:
            if fetch_all:
                rows = handle.fetch_all(result)
            else:
                first = handle.fetch_row(result)
                rows = [first] if first is not None else []
            return Rows([shape_row(row, fetch_mode, fetch_args) for row in rows])
        if kind is StatementKind.INSERT:
            return LastInsertId(handle.last_insert_id(result))
        return AffectedCount(handle.rows_affected(result))

    def _fail(self, connection: Connection, error: ExecutionError) -> Failure:
        logger.error(f"语句执行失败: {error.message}")
        if not connection.silent_errors:
            raise error
        warn_recoverable(f"语句执行失败（静默错误模式）: {error.message}")
        return Failure(error)

    def _record(self, rendered: str) -> None:
        entry = self.tracker.record(rendered)
        self.transactions.observe(entry)

    def query(
        self,
        statement: Statement,
        params: Any = None,
        fetch_mode: FetchMode = FetchMode.MAPPING,
        fetch_args: Any = None,
        fetch_all: bool = True,
    ) -> Union[List[Any], Optional[int], bool]:
        """
        执行语句并返回解包后的值

        Returns:
            读取类语句返回行列表，INSERT 返回新主键（可能为None），
            其他语句返回受影响行数，静默模式下失败返回 False

        Example:
            >>> engine.query("INSERT INTO users (firstname, lastname) VALUES (?, ?)", ["John", "Doe"])
            1
            >>> engine.query("SELECT * FROM users WHERE user_id IN (?)", [[1, 2, 3]])
            [{'user_id': 1, 'firstname': 'John', 'lastname': 'Doe'}]
        """
        return self.execute(statement, params, fetch_mode, fetch_args, fetch_all).value

    def query_row(
        self,
        statement: Statement,
        params: Any = None,
        require_row: bool = True,
        fetch_mode: FetchMode = FetchMode.MAPPING,
        fetch_args: Any = None,
    ) -> Any:
        """
        执行语句并只返回第一行

        Returns:
            第一行；零行且 require_row 为 False 时返回None；静默模式下失败返回 False

        Raises:
            NoRowError: 零行且 require_row 为 True 时（与静默错误模式无关）
        """
        outcome = self.execute(statement, params, fetch_mode, fetch_args, fetch_all=False)
        if isinstance(outcome, Failure):
            return False
        rows = outcome.rows if isinstance(outcome, Rows) else []
        if rows:
            return rows[0]
        if require_row:
            raise NoRowError(
                "查询没有返回任何行",
                details={"query": self.statement_return(statement)},
            )
        return None

    def query_column(
        self, statement: Statement, params: Any = None, column_index: int = 0
    ) -> Union[List[Any], bool]:
        """执行语句并返回每一行中 column_index 位置的值"""
        outcome = self.execute(statement, params, FetchMode.COLUMN, column_index)
        if isinstance(outcome, Failure):
            return False
        return outcome.rows if isinstance(outcome, Rows) else []

    # ------------------------------------------------------------------
    # 流式游标
    # ------------------------------------------------------------------

    def query_loop(
        self,
        statement: Statement,
        params: Any = None,
        fetch_mode: FetchMode = FetchMode.MAPPING,
        fetch_args: Any = None,
    ) -> Union[StreamingCursor, bool]:
        """
        执行语句并打开流式游标，不缓存结果行

        已打开的游标会被丢弃。静默模式下执行失败返回 False。
        """
        self._discard_cursor()
        connection = self.connections.get_connection()
        prepared, bound = self._bind(statement, params, connection)
        handle = connection.handle
        rendered = render_statement(prepared.text, bound, handle.quote, handle.backslash_escapes)

        try:
            result = handle.execute(prepared.driver_statement, bound, stream=True)
        except ExecutionError as e:
            self._fail(connection, e)
            return False
        finally:
            self._record(rendered)

        self._cursor = StreamingCursor(
            self.connections, connection.identity, result, fetch_mode, fetch_args
        )
        return self._cursor

    def query_next(self, fetch_mode: Optional[FetchMode] = None) -> Any:
        """
        读取当前游标的下一行

        Returns:
            下一行，读取完毕时返回 False

        Raises:
            InvalidCursorError: 没有打开的游标，或游标所属连接已被替换
        """
        if self._cursor is None:
            raise InvalidCursorError("没有打开的游标，请先调用 query_loop")
        cursor = self._cursor
        try:
            return cursor.next(fetch_mode)
        except ExecutionError as e:
            self._fail(self.connections.current, e)
            return False

    def _discard_cursor(self) -> None:
        cursor, self._cursor = self._cursor, None
        if cursor is not None:
            cursor.discard()

    # ------------------------------------------------------------------
    # 渲染与转义
    # ------------------------------------------------------------------

    def statement_return(self, statement: Statement) -> str:
        """返回语句文本（预处理语句返回展开后的文本）"""
        if isinstance(statement, PreparedStatement):
            return statement.text
        return statement

    def query_return(self, statement: Statement, params: Any = None, suppress_warning: bool = False) -> str:
        """
        生成代入参数后的语句文本，不执行

        渲染只是近似结果，参数的类型转换与转义细节由驱动决定，
        因此除非 suppress_warning 为 True，结果前会附加固定的警告行。
        """
        current = self.connections.current
        quote = current.handle.quote if current is not None else render_literal
        backslash_escapes = current is not None and current.handle.backslash_escapes

        if isinstance(statement, PreparedStatement):
            text = statement.text
            values = statement.params if params is None else params
        else:
            expanded = expand_placeholders(statement, params, backslash_escapes)
            text, values = expanded.text, expanded.params

        rendered = render_statement(text, values, quote, backslash_escapes)
        if suppress_warning:
            return rendered
        return f"{RENDER_WARNING}\n{rendered}"

    def query_dump(
        self,
        statement: Statement,
        params: Any = None,
        suppress_warning: bool = False,
        stream: Optional[TextIO] = None,
    ) -> str:
        """与 query_return 相同，并将结果写入 stream（默认为标准输出）"""
        rendered = self.query_return(statement, params, suppress_warning)
        print(rendered, file=stream or sys.stdout)
        return rendered

    def quote_smart(self, value: Any) -> str:
        """
        将值转义为SQL字面量，纯数字直接返回不加引号

        Raises:
            ConfigError: 启用了旧式自动转义兼容模式时
        """
        if self.legacy_auto_escape:
            raise ConfigError(
                "检测到旧式自动转义兼容模式，quote_smart 会导致重复转义，拒绝执行",
                config_key="database.legacy_auto_escape",
            )
        if is_numeric(value):
            return str(value)
        return self.connections.get_connection().handle.quote(value)

    # ------------------------------------------------------------------
    # 标识符与元数据
    # ------------------------------------------------------------------

    def catalog(self) -> IdentifierCatalog:
        """当前连接的标识符目录，首次调用时加载"""
        return self.catalogs.get(self.connections.get_connection())

    def escape_identifier(self, name: str, quote: bool = True) -> str:
        """
        校验不可信的标识符

        Returns:
            str: 目录中存在时返回该名字（quote 为 True 时加方言分隔符），否则返回空字符串
        """
        found = self.catalog().find(name)
        if found is None:
            logger.debug(f"未知标识符: {name!r}")
            return ""
        if quote:
            return self.connections.current.handle.quote_identifier(found)
        return found

    def enum_values(self, table: str, column: str) -> List[str]:
        """返回枚举列的可选值，表或列不在目录中时返回空列表"""
        catalog = self.catalog()
        if not catalog.has_table(table) or column not in catalog.column_names(table):
            return []
        return self.connections.current.handle.enum_values(table, column)

    def get_tables(self) -> List[str]:
        return list(self.catalog().tables)

    def get_all_columns(self) -> List[str]:
        return self.catalog().all_columns

    def get_table_columns(self, table: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.catalog().table_columns(table)
