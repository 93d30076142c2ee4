"""
语句分类与查询结果模块

语句类型通过启发式规则判断：跳过前导空白、注释（-- 与 /* */）和左括号后，
取第一个单词并忽略大小写进行匹配。

- 读取类（SELECT/SHOW/DESCRIBE/EXPLAIN/WITH/PRAGMA/VALUES/TABLE）返回 Rows
- INSERT 返回 LastInsertId
- UPDATE/DELETE/REPLACE 返回 AffectedCount
- 其余语句（DDL等）同样返回 AffectedCount

执行失败（静默错误模式）返回 Failure，其 value 为 False。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .exceptions import BindingError, DBAccessError


class StatementKind(Enum):
    READ = "read"
    INSERT = "insert"
    WRITE = "write"
    OTHER = "other"


READ_KEYWORDS = {
    "SELECT",
    "SHOW",
    "DESCRIBE",
    "DESC",
    "EXPLAIN",
    "WITH",
    "PRAGMA",
    "VALUES",
    "TABLE",
}
WRITE_KEYWORDS = {"UPDATE", "DELETE", "REPLACE"}


def leading_keyword(text: str) -> str:
    """返回语句的首个关键字（大写），没有关键字时返回空字符串"""
    i = 0
    n = len(text)
    while i < n:
        if text[i].isspace() or text[i] == "(":
            i += 1
        elif text.startswith("--", i):
            newline = text.find("\n", i)
            i = n if newline < 0 else newline + 1
        elif text.startswith("/*", i):
            close = text.find("*/", i + 2)
            i = n if close < 0 else close + 2
        else:
            break

    start = i
    while i < n and (text[i].isalnum() or text[i] == "_"):
        i += 1
    return text[start:i].upper()


def classify_statement(text: str) -> StatementKind:
    """
    根据首个关键字判断语句类型

    Example:
        >>> classify_statement("  /* hint */ select 1")
        <StatementKind.READ: 'read'>
    """
    keyword = leading_keyword(text)
    if keyword in READ_KEYWORDS:
        return StatementKind.READ
    if keyword == "INSERT":
        return StatementKind.INSERT
    if keyword in WRITE_KEYWORDS:
        return StatementKind.WRITE
    return StatementKind.OTHER


@dataclass(frozen=True)
class Rows:
    """读取类语句的结果，零行时为空列表而不是None"""

    rows: List[Any] = field(default_factory=list)
    ok = True

    @property
    def value(self) -> List[Any]:
        return self.rows


@dataclass(frozen=True)
class LastInsertId:
    """INSERT 语句的结果，驱动未报告主键时 id 为None"""

    id: Optional[int] = None
    ok = True

    @property
    def value(self) -> Optional[int]:
        return self.id


@dataclass(frozen=True)
class AffectedCount:
    """UPDATE/DELETE/REPLACE 等语句的受影响行数"""

    count: int = 0
    ok = True

    @property
    def value(self) -> int:
        return self.count


@dataclass(frozen=True)
class Failure:
    """静默错误模式下的执行失败"""

    error: DBAccessError
    ok = False

    @property
    def value(self) -> bool:
        return False


QueryResult = Union[Rows, LastInsertId, AffectedCount, Failure]


class FetchMode(Enum):
    """
    行的返回形式

    - MAPPING: 列名到值的字典（默认）
    - TUPLE: 按列顺序排列的元组
    - COLUMN: 仅返回 fetch_args 指定序号的列值
    """

    MAPPING = "mapping"
    TUPLE = "tuple"
    COLUMN = "column"


def shape_row(row: Dict[str, Any], mode: FetchMode = FetchMode.MAPPING, fetch_args: Any = None) -> Any:
    """按 FetchMode 转换一行"""
    if mode is FetchMode.TUPLE:
        return tuple(row.values())
    if mode is FetchMode.COLUMN:
        index = fetch_args or 0
        values = list(row.values())
        if not 0 <= index < len(values):
            raise BindingError(
                f"列序号 {index} 超出范围，结果共有 {len(values)} 列",
                details={"column_index": index, "column_count": len(values)},
            )
        return values[index]
    return row
