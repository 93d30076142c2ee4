"""
数据库访问层自定义异常模块

提供项目专用的异常类层次结构，用于精确区分连接、执行、绑定、游标和事务错误。

异常分类：
- ConnectionError: 服务器池耗尽或驱动连接失败（致命）
- ExecutionError: 驱动报告语句执行失败（静默模式下可恢复）
- NoRowError: query_row 要求返回行但结果为空（始终致命）
- InvalidCursorError: 流式游标在连接替换后继续使用（编程错误）
- BindingError: 占位符与参数数量或类型不匹配（致命）
- TransactionError: 事务状态机的非法迁移（编程错误）

注意：标识符校验失败不是异常，escape_identifier 通过返回空字符串表示。
"""

import warnings
from typing import Any, Dict, List, Optional, Sequence


class DBAccessError(Exception):
    """
    数据库访问层基础异常类

    所有自定义异常的基类，提供统一的异常处理接口。

    Attributes:
        message (str): 异常描述信息
        error_code (Optional[str]): 错误代码，用于错误分类
        details (Dict[str, Any]): 详细的错误信息
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        """返回异常的字符串表示"""
        base_str = f"{self.__class__.__name__}: {self.message}"
        if self.error_code:
            base_str += f" (错误代码: {self.error_code})"
        return base_str

    def to_dict(self) -> Dict[str, Any]:
        """
        将异常信息转换为字典格式

        Returns:
            包含异常信息的字典
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class ConfigError(DBAccessError):
    """
    配置相关异常

    处理配置文件读取、解析、验证等过程中出现的错误。
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        config_file: Optional[str] = None,
        config_key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, error_code, details)
        self.config_file = config_file
        self.config_key = config_key

        if config_file:
            self.details["config_file"] = config_file
        if config_key:
            self.details["config_key"] = config_key


class CryptoError(DBAccessError):
    """加密解密相关异常"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, error_code, details)
        self.operation = operation
        if operation:
            self.details["operation"] = operation


class ConnectionError(DBAccessError):
    """
    数据库连接异常

    服务器池中所有服务器均连接失败，或驱动层连接失败时抛出。
    attempted_hosts 按尝试顺序记录每一个被尝试过的主机。

    Attributes:
        attempted_hosts (List[str]): 已尝试的主机列表
        host (Optional[str]): 单个驱动连接失败时对应的主机
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        attempted_hosts: Optional[Sequence[str]] = None,
        host: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, error_code, details)
        self.attempted_hosts: List[str] = list(attempted_hosts or [])
        self.host = host

        if self.attempted_hosts:
            self.details["attempted_hosts"] = self.attempted_hosts
        if host:
            self.details["host"] = host


class ExecutionError(DBAccessError):
    """
    语句执行异常

    驱动报告语句执行失败时抛出。静默错误模式下不会抛出，
    而是返回 False 并发出 QueryWarning。
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        query: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, error_code, details)
        self.query = query
        if query:
            self.details["query_preview"] = self._get_query_preview(query)

    def _get_query_preview(self, query: str, max_length: int = 100) -> str:
        if len(query) <= max_length:
            return query
        return query[:max_length] + "..."


class NoRowError(DBAccessError):
    """query_row 要求返回一行但结果为空，与静默错误模式无关"""


class InvalidCursorError(DBAccessError):
    """流式游标已失效（所属连接被替换或已被新游标取代）"""


class BindingError(DBAccessError):
    """
    参数绑定异常

    占位符数量与参数数量不一致、混用 ? 与 :name 两种风格、
    向命名占位符绑定序列值、或按列读取时列序号越界时抛出。绝不会静默截断或补齐参数。
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        placeholder_count: Optional[int] = None,
        parameter_count: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, error_code, details)
        self.placeholder_count = placeholder_count
        self.parameter_count = parameter_count

        if placeholder_count is not None:
            self.details["placeholder_count"] = placeholder_count
        if parameter_count is not None:
            self.details["parameter_count"] = parameter_count


class TransactionError(DBAccessError):
    """事务状态机非法迁移，例如空闲状态下提交或事务嵌套"""


class QueryWarning(UserWarning):
    """静默错误模式下语句执行失败时发出的可恢复警告"""


def warn_recoverable(message: str) -> None:
    """发出可恢复的执行警告"""
    warnings.warn(message, QueryWarning, stacklevel=3)
