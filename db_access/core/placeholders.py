"""
占位符扫描与展开模块

语句中的占位符有两种风格，一条语句只能使用其中一种：
- 位置占位符: ?
- 命名占位符: :label

扫描时会跳过引号内的字面量（'...' "..." `...`）、行注释（--）和块注释（/* */），
并忽略 PostgreSQL 的 :: 类型转换。
字面量内部默认只识别双写引号（标准SQL），反斜杠转义仅在方言支持时（如 MySQL）启用。

位置风格下，若某个参数本身是序列（list/tuple/set），对应的单个 ? 会被展开为
N 个以逗号分隔的 ?（N 为序列长度，最少为1），序列在原位置被摊平进参数列表。
命名风格不支持展开。展开结果交给驱动做参数绑定，绝不拼接进语句文本。
"""

import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .exceptions import BindingError

POSITIONAL = "positional"
NAMED = "named"

# 被视为展开请求的参数类型（str/bytes 虽是序列，但按标量处理）
EXPANSION_TYPES = (list, tuple, set, frozenset)

_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMERIC_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")

Params = Union[List[Any], Dict[str, Any]]


@dataclass(frozen=True)
class Placeholder:
    """语句中的一个占位符，name 为None表示位置占位符"""

    start: int
    end: int
    name: Optional[str] = None


@dataclass(frozen=True)
class ExpandedStatement:
    """
    展开后的语句

    Attributes:
        text (str): 改写后的语句文本
        params (Params): 与占位符顺序一一对应的摊平参数（命名风格为映射）
        style (Optional[str]): POSITIONAL / NAMED / None（无占位符）
    """

    text: str
    params: Params
    style: Optional[str]


def scan_placeholders(text: str, backslash_escapes: bool = False) -> List[Placeholder]:
    """
    扫描语句中的占位符

    Args:
        text: SQL语句文本
        backslash_escapes: 引号字面量内的反斜杠是否为转义字符

    Returns:
        List[Placeholder]: 按出现顺序排列的占位符
    """
    found: List[Placeholder] = []
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if ch in ("'", '"', "`"):
            i = _skip_quoted(text, i, backslash_escapes)
            continue
        if text.startswith("--", i):
            newline = text.find("\n", i)
            i = n if newline < 0 else newline + 1
            continue
        if text.startswith("/*", i):
            close = text.find("*/", i + 2)
            i = n if close < 0 else close + 2
            continue

        if ch == "?":
            found.append(Placeholder(i, i + 1))
        elif ch == ":":
            if text.startswith("::", i):
                i += 2
                continue
            match = _NAME_RE.match(text, i + 1)
            preceded_by_word = i > 0 and (text[i - 1].isalnum() or text[i - 1] == "_")
            if match and not preceded_by_word:
                found.append(Placeholder(i, match.end(), match.group(0)))
                i = match.end()
                continue
        i += 1

    return found


def _skip_quoted(text: str, start: int, backslash_escapes: bool = False) -> int:
    """返回引号字面量结束后的位置，支持双写引号，反斜杠转义按方言开启"""
    quote = text[start]
    i = start + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if backslash_escapes and ch == "\\":
            i += 2
            continue
        if ch == quote:
            if i + 1 < n and text[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return n


def detect_style(placeholders: Sequence[Placeholder]) -> Optional[str]:
    """
    判断占位符风格

    Raises:
        BindingError: 当同一语句混用两种风格时
    """
    has_named = any(p.name is not None for p in placeholders)
    has_positional = any(p.name is None for p in placeholders)
    if has_named and has_positional:
        raise BindingError("语句不能同时使用 ? 与 :name 两种占位符")
    if has_named:
        return NAMED
    if has_positional:
        return POSITIONAL
    return None


def normalize_params(params: Any) -> Params:
    """
    规范化参数：None 为空列表，映射保持不变，序列转为列表，单个标量包装为单元素列表
    """
    if params is None:
        return []
    if isinstance(params, dict):
        return dict(params)
    if isinstance(params, (list, tuple)):
        return list(params)
    return [params]


def is_expansion(value: Any) -> bool:
    return isinstance(value, EXPANSION_TYPES)


def expand_placeholders(text: str, params: Any = None, backslash_escapes: bool = False) -> ExpandedStatement:
    """
    展开语句中的数组参数

    Args:
        text: 原始语句
        params: 参数列表、命名参数映射或单个标量
        backslash_escapes: 引号字面量内的反斜杠是否为转义字符

    Returns:
        ExpandedStatement: 改写后的语句与摊平后的参数

    Raises:
        BindingError: 占位符与参数数量不一致、风格混用或命名占位符绑定了序列时

    Example:
        >>> expanded = expand_placeholders("SELECT * FROM t WHERE id IN (?)", [[1, 2, 3]])
        >>> expanded.text
        'SELECT * FROM t WHERE id IN (?, ?, ?)'
        >>> expanded.params
        [1, 2, 3]
    """
    placeholders = scan_placeholders(text, backslash_escapes)
    style = detect_style(placeholders)
    values = normalize_params(params)

    if style is None:
        if values:
            raise BindingError(
                "语句中没有占位符，但提供了绑定参数",
                placeholder_count=0,
                parameter_count=len(values),
            )
        return ExpandedStatement(text, [], None)

    if style == NAMED:
        return ExpandedStatement(text, _check_named(placeholders, values), NAMED)

    if isinstance(values, dict):
        raise BindingError("位置占位符 ? 需要列表参数，不能使用映射")
    if len(values) != len(placeholders):
        raise BindingError(
            f"占位符数量({len(placeholders)})与参数数量({len(values)})不一致",
            placeholder_count=len(placeholders),
            parameter_count=len(values),
        )

    pieces: List[str] = []
    flat: List[Any] = []
    cursor = 0
    for placeholder, value in zip(placeholders, values):
        pieces.append(text[cursor:placeholder.start])
        if is_expansion(value):
            items = list(value) or [None]
            pieces.append(", ".join("?" for _ in items))
            flat.extend(items)
        else:
            pieces.append("?")
            flat.append(value)
        cursor = placeholder.end
    pieces.append(text[cursor:])

    return ExpandedStatement("".join(pieces), flat, POSITIONAL)


def _check_named(placeholders: Sequence[Placeholder], values: Params) -> Dict[str, Any]:
    if not isinstance(values, dict):
        if values:
            raise BindingError("命名占位符 :name 需要映射参数，不能使用列表")
        values = {}

    names = {p.name[1:] for p in placeholders if p.name}
    missing = sorted(names - set(values))
    extra = sorted(set(values) - names)
    if missing:
        raise BindingError(f"缺少命名参数: {', '.join(missing)}")
    if extra:
        raise BindingError(f"存在多余的命名参数: {', '.join(extra)}")

    for name in names:
        if is_expansion(values[name]):
            raise BindingError(f"命名占位符 :{name} 不支持数组展开")
    return {name: values[name] for name in names}


def check_prepared_params(style: Optional[str], count: int, names: Sequence[str], params: Any) -> Params:
    """
    校验复用预处理语句时的参数（不做数组展开）

    Raises:
        BindingError: 参数与占位符不匹配，或传入了需要展开的序列时
    """
    values = normalize_params(params)
    if style == NAMED:
        placeholders = [Placeholder(0, 0, ":" + name) for name in names]
        return _check_named(placeholders, values)

    if isinstance(values, dict):
        raise BindingError("位置占位符 ? 需要列表参数，不能使用映射")
    if len(values) != count:
        raise BindingError(
            f"占位符数量({count})与参数数量({len(values)})不一致",
            placeholder_count=count,
            parameter_count=len(values),
        )
    if any(is_expansion(value) for value in values):
        raise BindingError("预处理语句不支持数组展开，请在首次 prepare 时传入数组参数")
    return values


def is_numeric(value: Any) -> bool:
    """判断值是否为纯数字（布尔值与 NaN/无穷大除外），数字字符串同样视为数字"""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, Decimal):
        return value.is_finite()
    if isinstance(value, str):
        return bool(_NUMERIC_RE.match(value))
    return False


def render_literal(value: Any) -> str:
    """在没有连接时使用的通用SQL字面量渲染"""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if is_numeric(value) and not isinstance(value, str):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return "X'" + bytes(value).hex() + "'"
    return "'" + str(value).replace("'", "''") + "'"


def render_statement(
    text: str,
    params: Any = None,
    quote: Optional[Callable[[Any], str]] = None,
    backslash_escapes: bool = False,
) -> str:
    """
    将参数代入语句，生成仅供人工查看的近似文本（不执行）

    参数不足时保留剩余占位符原样输出，不会抛出异常。

    Args:
        text: 语句文本（通常为已展开的语句）
        params: 摊平后的参数
        quote: 值转义函数，默认使用 render_literal
        backslash_escapes: 引号字面量内的反斜杠是否为转义字符
    """
    quote = quote or render_literal
    values = normalize_params(params)
    pieces: List[str] = []
    cursor = 0
    position = 0

    for placeholder in scan_placeholders(text, backslash_escapes):
        pieces.append(text[cursor:placeholder.start])
        original = text[placeholder.start:placeholder.end]
        if placeholder.name is None:
            if isinstance(values, list) and position < len(values):
                pieces.append(quote(values[position]))
            else:
                pieces.append(original)
            position += 1
        else:
            key = placeholder.name[1:]
            if isinstance(values, dict) and key in values:
                pieces.append(quote(values[key]))
            else:
                pieces.append(original)
        cursor = placeholder.end

    pieces.append(text[cursor:])
    return "".join(pieces)
