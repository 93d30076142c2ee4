"""
核心模块包

- servers / connections: 服务器池与故障转移连接管理
- placeholders / engine / cursor: 占位符展开、语句执行与流式读取
- catalog: 标识符白名单
- transactions / tracker: 事务状态与执行记录
- config / crypto: TOML 配置与密码加密
"""

from .catalog import CatalogCache, IdentifierCatalog
from .config import ConfigManager, ConfigScope
from .connections import Connection, ConnectionManager
from .crypto import CryptoManager
from .cursor import StreamingCursor
from .database import DatabaseManager
from .engine import FetchMode, PreparedStatement, QueryEngine
from .servers import ServerDescriptor, ServerPool
from .tracker import QueryLogEntry, QueryTracker
from .transactions import IsolationIntent, TransactionManager, TransactionState

__all__ = [
    "CatalogCache",
    "IdentifierCatalog",
    "ConfigManager",
    "ConfigScope",
    "Connection",
    "ConnectionManager",
    "CryptoManager",
    "StreamingCursor",
    "DatabaseManager",
    "FetchMode",
    "PreparedStatement",
    "QueryEngine",
    "ServerDescriptor",
    "ServerPool",
    "QueryLogEntry",
    "QueryTracker",
    "IsolationIntent",
    "TransactionManager",
    "TransactionState",
]
