"""
DB Access - 带故障转移的数据库访问层
====================================

位于应用代码与数据库驱动之间，提供：

- 多服务器故障转移与负载均衡
- 安全的参数绑定与数组占位符展开
- 基于目录的表名/列名白名单校验
- 事务生命周期与语句日志
- 缓冲与流式两种结果读取方式

使用示例:
    >>> from db_access import DatabaseManager, ServerDescriptor, SQLAlchemyDriver
    >>> db = DatabaseManager([ServerDescriptor("local", database="app.db")], SQLAlchemyDriver("sqlite"))
    >>> db.query("SELECT * FROM users WHERE user_id IN (?)", [[2, 3, 5]])
    []
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .core.config import ConfigManager, ConfigScope
from .core.database import DatabaseManager
from .core.engine import FetchMode, PreparedStatement
from .core.exceptions import (
    BindingError,
    ConfigError,
    ConnectionError,
    CryptoError,
    DBAccessError,
    ExecutionError,
    InvalidCursorError,
    NoRowError,
    QueryWarning,
    TransactionError,
)
from .core.results import AffectedCount, Failure, LastInsertId, Rows
from .core.servers import ServerDescriptor, ServerPool
from .core.tracker import QueryTracker
from .drivers.sqlalchemy_driver import SQLAlchemyDriver

__all__ = [
    # 核心管理器
    "DatabaseManager",
    "ConfigManager",
    "ConfigScope",
    "ServerDescriptor",
    "ServerPool",
    "QueryTracker",
    "SQLAlchemyDriver",
    # 查询
    "FetchMode",
    "PreparedStatement",
    "Rows",
    "LastInsertId",
    "AffectedCount",
    "Failure",
    # 异常类
    "DBAccessError",
    "ConfigError",
    "CryptoError",
    "ConnectionError",
    "ExecutionError",
    "NoRowError",
    "InvalidCursorError",
    "BindingError",
    "TransactionError",
    "QueryWarning",
]


def get_version() -> str:
    """
    获取当前模块版本号

    Returns:
        str: 版本号字符串，格式为 'x.y.z'
    """
    return __version__
