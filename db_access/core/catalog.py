"""
标识符目录模块

表名与列名无法通过参数绑定传入语句，IdentifierCatalog 是将不可信标识符
插入语句的唯一途径：只有目录中存在的名字才会被接受。

目录在每个连接生命周期内首次使用时加载一次，并在连接被替换时失效。
CatalogCache 以连接标识为键缓存目录，而不是使用隐藏的一次性标志。
"""

from typing import Any, Dict, List, Optional

from ..drivers.base import DriverHandle
from ..utils.logging_utils import get_logger
from .connections import Connection

logger = get_logger(__name__)


class IdentifierCatalog:
    """
    已知表名与列名的目录

    Attributes:
        tables (List[str]): 按数据库返回顺序排列的表名
        columns (Dict[str, List[Dict[str, Any]]]): 表名到列描述（按序号顺序）的映射
    """

    def __init__(self, tables: List[str], columns: Dict[str, List[Dict[str, Any]]]) -> None:
        self.tables = list(tables)
        self.columns = columns
        self._table_set = set(self.tables)
        self._all_columns: Optional[List[str]] = None

    @classmethod
    def load(cls, handle: DriverHandle) -> "IdentifierCatalog":
        """通过驱动句柄读取所有表及其列"""
        tables = handle.list_tables()
        columns = {table: handle.list_columns(table) for table in tables}
        logger.debug(f"标识符目录已加载: {len(tables)} 个表")
        return cls(tables, columns)

    def has_table(self, name: str) -> bool:
        return name in self._table_set

    def column_names(self, table: str) -> List[str]:
        return [column["name"] for column in self.columns.get(table, [])]

    def find(self, name: str) -> Optional[str]:
        """
        查找标识符

        先匹配表名，再按表的顺序在各表的列中查找，返回第一个匹配的名字。

        Returns:
            Optional[str]: 匹配到的名字，不存在时返回None
        """
        if self.has_table(name):
            return name
        for table in self.tables:
            if name in self.column_names(table):
                return name
        return None

    @property
    def all_columns(self) -> List[str]:
        """所有表的列名（去重，保持首次出现的顺序）"""
        if self._all_columns is None:
            seen: Dict[str, None] = {}
            for table in self.tables:
                for name in self.column_names(table):
                    seen.setdefault(name, None)
            self._all_columns = list(seen)
        return list(self._all_columns)

    def table_columns(self, table: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        返回列描述

        Args:
            table: 表名，为None时返回所有表的列

        Returns:
            List[Dict[str, Any]]: 每个元素包含 table / name / nullable / auto_increment，
            同一表内按列序号排列；未知表返回空列表
        """
        tables = self.tables if table is None else [table]
        described = []
        for name in tables:
            for column in self.columns.get(name, []):
                described.append(
                    {
                        "table": name,
                        "name": column["name"],
                        "nullable": column["nullable"],
                        "auto_increment": column["autoincrement"],
                    }
                )
        return described

    def __repr__(self) -> str:
        return f"IdentifierCatalog(tables={len(self.tables)})"


class CatalogCache:
    """以连接标识为键的目录缓存"""

    def __init__(self) -> None:
        self._catalogs: Dict[int, IdentifierCatalog] = {}

    def get(self, connection: Connection) -> IdentifierCatalog:
        catalog = self._catalogs.get(connection.identity)
        if catalog is None:
            catalog = IdentifierCatalog.load(connection.handle)
            self._catalogs[connection.identity] = catalog
        return catalog

    def invalidate(self, connection: Connection) -> None:
        """连接释放时调用，丢弃该连接的目录"""
        if self._catalogs.pop(connection.identity, None) is not None:
            logger.debug(f"连接 {connection.identity} 的标识符目录已失效")

    def __contains__(self, connection: Connection) -> bool:
        return connection.identity in self._catalogs
