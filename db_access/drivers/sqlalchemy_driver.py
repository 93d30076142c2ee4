"""
SQLAlchemy 数据库驱动模块

基于 SQLAlchemy 2.x 实现 DatabaseDriver / DriverHandle 能力接口。

主要特性：
- 每次 connect 创建一个 Engine，并持有一个 sqlalchemy Connection
- 持久连接使用默认 QueuePool（pool_pre_ping），非持久连接使用 NullPool
- 语句通过 text() 绑定参数；位置占位符 ? 改写为生成的命名参数 :_pN
- 显式事务之外，每条语句在结果释放后立即提交（自动提交语义）
- 元数据通过 sqlalchemy.inspect() 反射，枚举值来自反射出的 Enum 类型
- 字面量转义使用方言的字面量渲染器
"""

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import Enum as SAEnum
from sqlalchemy import Integer, create_engine, inspect, literal, text
from sqlalchemy.engine import URL, Connection, CursorResult, Engine
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.pool import NullPool
from sqlalchemy.sql.elements import TextClause

from ..core.exceptions import ConnectionError, ExecutionError, TransactionError
from ..core.placeholders import is_numeric, render_literal, scan_placeholders
from ..core.servers import ServerDescriptor
from ..utils.logging_utils import get_logger
from .base import BoundParams, DatabaseDriver, DriverHandle

logger = get_logger(__name__)

# 未被识别为占位符、但会被 text() 误认为绑定参数的冒号
_STRAY_COLON_RE = re.compile(r"(?<![:\w\\]):(?=\w)")


def to_bind_text(statement: str, backslash_escapes: bool = False) -> str:
    """
    将语句改写为 text() 可绑定的形式

    位置占位符按顺序改写为 :_p0, :_p1 ...；命名占位符保持不变；
    其余可能被 text() 误认为参数的冒号转义为 \\:。
    backslash_escapes 与方言的字面量转义规则一致（MySQL 为 True）。
    """
    pieces: List[str] = []
    cursor = 0
    position = 0
    for placeholder in scan_placeholders(statement, backslash_escapes):
        pieces.append(_STRAY_COLON_RE.sub(r"\\:", statement[cursor:placeholder.start]))
        if placeholder.name is None:
            pieces.append(f":_p{position}")
            position += 1
        else:
            pieces.append(placeholder.name)
        cursor = placeholder.end
    pieces.append(_STRAY_COLON_RE.sub(r"\\:", statement[cursor:]))
    return "".join(pieces)


@dataclass(frozen=True)
class SQLAlchemyStatement:
    """预处理后的语句"""

    text: str
    clause: TextClause
    style: Optional[str]


class SQLAlchemyHandle(DriverHandle):
    """
    持有单个 sqlalchemy Connection 的驱动句柄

    Attributes:
        engine (Engine): 本次连接创建的引擎
        connection (Connection): 持有的连接
    """

    def __init__(self, engine: Engine, connection: Connection) -> None:
        self.engine = engine
        self.connection = connection
        self._transaction = None
        self._default_isolation: Optional[str] = connection.default_isolation_level
        self._isolation_changed = False

    @property
    def dialect(self):
        return self.engine.dialect

    @property
    def backslash_escapes(self) -> bool:
        # MySQL 在 sql_mode 含 NO_BACKSLASH_ESCAPES 时按标准SQL处理
        if self.dialect.name not in ("mysql", "mariadb"):
            return False
        return bool(getattr(self.dialect, "_backslash_escapes", True))

    def prepare(self, statement_text: str, style: Optional[str]) -> SQLAlchemyStatement:
        return SQLAlchemyStatement(statement_text, text(to_bind_text(statement_text, self.backslash_escapes)), style)

    def execute(
        self, statement: SQLAlchemyStatement, params: BoundParams, stream: bool = False
    ) -> CursorResult:
        if isinstance(params, dict):
            bind = dict(params)
        else:
            bind = {f"_p{index}": value for index, value in enumerate(params)}
        options = {"stream_results": True} if stream else {}

        try:
            return self.connection.execute(statement.clause, bind, execution_options=options)
        except SQLAlchemyError as e:
            self._end_implicit(commit=False)
            raise ExecutionError(
                f"语句执行失败: {e.__class__.__name__}: {str(e)}", query=statement.text
            ) from e

    def fetch_row(self, result: CursorResult) -> Optional[Dict[str, Any]]:
        if not result.returns_rows:
            return None
        try:
            row = result.mappings().fetchone()
        except SQLAlchemyError as e:
            raise ExecutionError(f"读取结果失败: {str(e)}") from e
        return dict(row) if row is not None else None

    def fetch_all(self, result: CursorResult) -> List[Dict[str, Any]]:
        if not result.returns_rows:
            return []
        try:
            return [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as e:
            raise ExecutionError(f"读取结果失败: {str(e)}") from e

    def last_insert_id(self, result: CursorResult) -> Optional[int]:
        try:
            last_id = result.lastrowid
        except (SQLAlchemyError, NotImplementedError):
            return None
        return int(last_id) if last_id else None

    def rows_affected(self, result: CursorResult) -> int:
        return max(result.rowcount, 0)

    def finish(self, result: CursorResult) -> None:
        result.close()
        self._end_implicit(commit=True)

    def _end_implicit(self, commit: bool) -> None:
        """结束 SQLAlchemy 自动开始的隐式事务，显式事务中不做任何操作"""
        if self._transaction is not None or not self.connection.in_transaction():
            return
        try:
            if commit:
                self.connection.commit()
            else:
                self.connection.rollback()
        except SQLAlchemyError as e:
            if commit:
                raise ExecutionError(f"自动提交失败: {str(e)}") from e
            logger.warning(f"回滚隐式事务失败: {str(e)}")

    def begin(self, isolation: Optional[str] = None) -> None:
        if self._transaction is not None:
            raise TransactionError("驱动连接上已存在显式事务")
        try:
            self._end_implicit(commit=True)
            if isolation:
                self._set_isolation(isolation)
            self._transaction = self.connection.begin()
        except SQLAlchemyError as e:
            self._restore_isolation()
            raise TransactionError(f"开始事务失败: {str(e)}") from e

    def _set_isolation(self, isolation: str) -> None:
        try:
            self.connection.execution_options(isolation_level=isolation)
        except ArgumentError:
            logger.warning(f"方言 {self.dialect.name} 不支持隔离级别 {isolation}，使用默认隔离级别")
            return
        self._isolation_changed = True

    def commit(self) -> None:
        transaction, self._transaction = self._transaction, None
        if transaction is None:
            raise TransactionError("驱动连接上没有显式事务")
        try:
            transaction.commit()
        except SQLAlchemyError as e:
            self._discard_failed(transaction)
            raise ExecutionError(f"提交事务失败: {str(e)}") from e
        finally:
            self._restore_isolation()

    def rollback(self) -> None:
        transaction, self._transaction = self._transaction, None
        if transaction is None:
            raise TransactionError("驱动连接上没有显式事务")
        try:
            transaction.rollback()
        except SQLAlchemyError as e:
            raise ExecutionError(f"回滚事务失败: {str(e)}") from e
        finally:
            self._restore_isolation()

    def _discard_failed(self, transaction) -> None:
        try:
            transaction.rollback()
        except SQLAlchemyError as e:
            logger.warning(f"提交失败后回滚事务失败: {str(e)}")

    def _restore_isolation(self) -> None:
        if not self._isolation_changed:
            return
        self._isolation_changed = False
        if self._default_isolation:
            self.connection.execution_options(isolation_level=self._default_isolation)

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None

    def list_tables(self) -> List[str]:
        try:
            return list(inspect(self.connection).get_table_names())
        except SQLAlchemyError as e:
            raise ExecutionError(f"读取表列表失败: {str(e)}") from e
        finally:
            self._end_implicit(commit=True)

    def list_columns(self, table: str) -> List[Dict[str, Any]]:
        try:
            inspector = inspect(self.connection)
            columns = inspector.get_columns(table)
            primary_key = inspector.get_pk_constraint(table).get("constrained_columns") or []
        except SQLAlchemyError as e:
            raise ExecutionError(f"读取表 {table} 的列失败: {str(e)}") from e
        finally:
            self._end_implicit(commit=True)

        described = []
        for column in columns:
            autoincrement = column.get("autoincrement")
            if autoincrement in (None, "auto"):
                # 单列整型主键由数据库自动生成（如 SQLite 的 rowid 别名）
                autoincrement = (
                    len(primary_key) == 1
                    and column["name"] in primary_key
                    and isinstance(column["type"], Integer)
                )
            described.append(
                {
                    "name": column["name"],
                    "nullable": bool(column.get("nullable", True)),
                    "autoincrement": bool(autoincrement),
                    "primary_key": column["name"] in primary_key,
                    "type": column["type"],
                }
            )
        return described

    def enum_values(self, table: str, column: str) -> List[str]:
        for described in self.list_columns(table):
            if described["name"] == column and isinstance(described["type"], SAEnum):
                return list(described["type"].enums)
        return []

    def quote(self, value: Any) -> str:
        if isinstance(value, (float, Decimal)) and not is_numeric(value):
            # NaN 与无穷大没有数字字面量，按字符串渲染
            return render_literal(value)
        try:
            compiled = literal(value).compile(
                dialect=self.dialect, compile_kwargs={"literal_binds": True}
            )
            return str(compiled)
        except (SQLAlchemyError, TypeError):
            # 方言没有该类型的字面量渲染器
            return render_literal(value)

    def quote_identifier(self, name: str) -> str:
        return self.dialect.identifier_preparer.quote_identifier(name)

    def close(self) -> None:
        try:
            self.connection.close()
        finally:
            self.engine.dispose()


class SQLAlchemyDriver(DatabaseDriver):
    """
    SQLAlchemy 驱动工厂

    Attributes:
        drivername (str): SQLAlchemy 驱动名，如 "mysql+pymysql"、"postgresql+psycopg"、"sqlite"
        pool_config (Dict[str, Any]): 持久连接的连接池参数
        echo_sql (bool): 是否输出SQL日志

    Example:
        >>> driver = SQLAlchemyDriver("sqlite")
        >>> handle = driver.connect(ServerDescriptor("local", database="app.db"), persistent=False)
    """

    DEFAULT_POOL_CONFIG: Dict[str, Any] = {
        "pool_pre_ping": True,  # 连接预检查，确保连接有效
        "pool_recycle": 3600,  # 连接回收时间（秒）
    }

    def __init__(
        self,
        drivername: str = "sqlite",
        pool_config: Optional[Dict[str, Any]] = None,
        echo_sql: bool = False,
        connect_args: Optional[Dict[str, Any]] = None,
    ) -> None:
        if not drivername:
            raise ValueError("驱动名不能为空")
        self.drivername = drivername
        self.pool_config = dict(pool_config or {})
        self.echo_sql = echo_sql
        self.connect_args = dict(connect_args or {})

    @property
    def is_sqlite(self) -> bool:
        return self.drivername.split("+")[0] == "sqlite"

    def build_url(self, server: ServerDescriptor) -> URL:
        """根据服务器描述构建连接URL，SQLite 下 database 为文件路径"""
        if self.is_sqlite:
            return URL.create(self.drivername, database=server.database or ":memory:")
        return URL.create(
            self.drivername,
            username=server.username or None,
            password=server.password or None,
            host=server.host,
            database=server.database or None,
        )

    def connect(self, server: ServerDescriptor, persistent: bool) -> SQLAlchemyHandle:
        url = self.build_url(server)
        engine_kwargs: Dict[str, Any] = {"echo": self.echo_sql}
        if persistent:
            engine_kwargs.update({**self.DEFAULT_POOL_CONFIG, **self.pool_config})
        else:
            engine_kwargs["poolclass"] = NullPool
        if self.connect_args:
            engine_kwargs["connect_args"] = self.connect_args

        engine: Optional[Engine] = None
        try:
            engine = create_engine(url, **engine_kwargs)
            connection = engine.connect()
        except SQLAlchemyError as e:
            if engine is not None:
                engine.dispose()
            raise ConnectionError(
                f"数据库连接建立失败: {e.__class__.__name__}: {str(e)}", host=server.host
            ) from e

        logger.debug(
            f"驱动连接成功: {url.render_as_string(hide_password=True)} "
            f"(persistent={persistent})"
        )
        return SQLAlchemyHandle(engine, connection)

    def __repr__(self) -> str:
        return f"SQLAlchemyDriver(drivername={self.drivername!r})"
