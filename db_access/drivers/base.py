"""
数据库驱动能力接口

ConnectionManager 与 QueryEngine 只依赖本模块定义的抽象接口，而不依赖具体驱动类型。

- DatabaseDriver: 按服务器描述与持久化标志建立连接，返回 DriverHandle
- DriverHandle: 一个已建立连接的全部能力（预处理、执行、取行、事务控制、元数据、转义）
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Union

from ..core.servers import ServerDescriptor

# 绑定参数：位置风格为序列，命名风格为映射
BoundParams = Union[Sequence[Any], Dict[str, Any]]


class DriverHandle(ABC):
    """单个已建立连接的驱动句柄"""

    @property
    def backslash_escapes(self) -> bool:
        """引号字面量内的反斜杠是否为转义字符，标准SQL方言为 False"""
        return False

    @abstractmethod
    def prepare(self, text: str, style: Optional[str]) -> Any:
        """预处理语句，style 为 "positional"、"named" 或 None（无占位符）"""

    @abstractmethod
    def execute(self, statement: Any, params: BoundParams, stream: bool = False) -> Any:
        """
        绑定参数并执行语句

        Raises:
            ExecutionError: 当驱动报告执行失败时
        """

    @abstractmethod
    def fetch_row(self, result: Any) -> Optional[Dict[str, Any]]:
        """读取下一行，结果耗尽时返回None"""

    @abstractmethod
    def fetch_all(self, result: Any) -> List[Dict[str, Any]]:
        """读取剩余全部行"""

    @abstractmethod
    def last_insert_id(self, result: Any) -> Optional[int]:
        """返回最近插入生成的主键，驱动未报告时返回None"""

    @abstractmethod
    def rows_affected(self, result: Any) -> int:
        """返回受影响的行数"""

    @abstractmethod
    def finish(self, result: Any) -> None:
        """释放结果，并在显式事务之外提交隐式事务"""

    @abstractmethod
    def begin(self, isolation: Optional[str] = None) -> None:
        """开始显式事务，isolation 为 SQL 隔离级别名称或None（驱动默认）"""

    @abstractmethod
    def commit(self) -> None:
        """提交显式事务"""

    @abstractmethod
    def rollback(self) -> None:
        """回滚显式事务"""

    @property
    @abstractmethod
    def in_transaction(self) -> bool:
        """是否处于显式事务中"""

    @abstractmethod
    def list_tables(self) -> List[str]:
        """按数据库返回的顺序列出所有表名"""

    @abstractmethod
    def list_columns(self, table: str) -> List[Dict[str, Any]]:
        """
        按序号顺序列出表的列

        每个元素包含 name / nullable / autoincrement / primary_key。
        """

    @abstractmethod
    def enum_values(self, table: str, column: str) -> List[str]:
        """返回枚举列的可选值，非枚举列返回空列表"""

    @abstractmethod
    def quote(self, value: Any) -> str:
        """将值转义为SQL字面量"""

    @abstractmethod
    def quote_identifier(self, name: str) -> str:
        """用方言的分隔符包裹标识符"""

    @abstractmethod
    def close(self) -> None:
        """释放底层连接"""


class DatabaseDriver(ABC):
    """驱动工厂：每次 connect 生成一个新的 DriverHandle"""

    @abstractmethod
    def connect(self, server: ServerDescriptor, persistent: bool) -> DriverHandle:
        """
        连接到指定服务器

        Raises:
            ConnectionError: 当连接失败时
        """
