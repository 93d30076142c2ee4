"""
服务器描述与服务器池模块

ServerDescriptor 描述一台候选数据库服务器，创建后不可变。
ServerPool 按顺序保存候选服务器，只能通过显式的重排操作（load_balance）改变顺序，
连接时按当前顺序依次尝试（故障转移）。
"""

import random
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional


@dataclass(frozen=True)
class ServerDescriptor:
    """
    候选服务器描述

    Attributes:
        host (str): 主机地址（SQLite下仅作为标识）
        username (str): 用户名
        password (str): 明文密码（仅存在于内存中）
        database (str): 数据库名（SQLite下为数据库文件路径）
    """

    host: str
    username: str = ""
    password: str = ""
    database: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerDescriptor":
        """从配置字典创建服务器描述"""
        return cls(
            host=str(data.get("host", "")),
            username=str(data.get("username", "")),
            password=str(data.get("password", "")),
            database=str(data.get("database", "")),
        )

    def __repr__(self) -> str:
        # 密码不出现在日志与异常信息中
        return (
            f"ServerDescriptor(host={self.host!r}, username={self.username!r}, "
            f"password='***', database={self.database!r})"
        )


class ServerPool:
    """
    有序的候选服务器池

    Example:
        >>> pool = ServerPool([ServerDescriptor("db1"), ServerDescriptor("db2")])
        >>> pool.hosts
        ['db1', 'db2']
        >>> pool.load_balance()  # 只影响下一次连接的尝试顺序
    """

    def __init__(
        self,
        servers: Iterable[ServerDescriptor],
        rng: Optional[random.Random] = None,
    ) -> None:
        self._servers: List[ServerDescriptor] = list(servers)
        self._rng = rng or random.Random()

    def load_balance(self) -> None:
        """就地对服务器顺序做均匀随机洗牌，不触发重连"""
        self._rng.shuffle(self._servers)

    @property
    def servers(self) -> List[ServerDescriptor]:
        """当前顺序下的服务器列表副本"""
        return list(self._servers)

    @property
    def hosts(self) -> List[str]:
        return [server.host for server in self._servers]

    def __iter__(self) -> Iterator[ServerDescriptor]:
        return iter(list(self._servers))

    def __len__(self) -> int:
        return len(self._servers)

    def __repr__(self) -> str:
        return f"ServerPool(hosts={self.hosts!r})"
