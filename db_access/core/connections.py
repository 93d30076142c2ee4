"""
连接管理模块

ConnectionManager 在任意时刻至多持有一个活动连接：
- connect() 按服务器池当前顺序依次尝试，第一个成功的服务器成为活动连接
- 所有服务器失败时抛出 ConnectionError，并携带已尝试的主机列表
- 故障转移只发生在连接时，执行中途断线作为执行失败上报，不会自动重试
- 持久化模式变化时关闭旧连接并按当前服务器顺序重新连接
- 连接被替换或关闭时通知已注册的监听器（元数据缓存、事务管理器等）
"""

import itertools
from typing import Callable, Iterable, List, Optional, Union

from ..drivers.base import DatabaseDriver, DriverHandle
from ..utils.logging_utils import get_logger
from .exceptions import ConnectionError
from .servers import ServerDescriptor, ServerPool

logger = get_logger(__name__)

# 没有连接时 get_host() / get_database_name() 返回的哨兵值
NO_CONNECTION_HOST = "No Connection"
NO_CONNECTION_DATABASE = ""

_connection_ids = itertools.count(1)


class Connection:
    """
    活动连接

    拥有且仅拥有一个驱动句柄。identity 在进程内唯一，
    用作元数据缓存、游标和事务与连接之间的绑定键。

    Attributes:
        handle (DriverHandle): 驱动句柄
        server (ServerDescriptor): 连接到的服务器
        is_persistent (bool): 是否为持久连接
        silent_errors (bool): 执行失败时是否返回 False 而不是抛出异常
        identity (int): 连接标识
    """

    def __init__(
        self,
        handle: DriverHandle,
        server: ServerDescriptor,
        is_persistent: bool,
        silent_errors: bool = False,
    ) -> None:
        self.handle = handle
        self.server = server
        self.is_persistent = is_persistent
        self.silent_errors = silent_errors
        self.identity = next(_connection_ids)
        self.closed = False

    @property
    def host(self) -> str:
        return self.server.host

    @property
    def database(self) -> str:
        return self.server.database

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.handle.close()

    def __repr__(self) -> str:
        return (
            f"Connection(identity={self.identity}, host={self.host!r}, "
            f"database={self.database!r}, persistent={self.is_persistent}, "
            f"silent_errors={self.silent_errors})"
        )


class ConnectionManager:
    """
    连接管理器

    Example:
        >>> manager = ConnectionManager(SQLAlchemyDriver("sqlite"), [ServerDescriptor("local", database="app.db")])
        >>> connection = manager.get_connection()
        >>> manager.get_host()
        'local'
        >>> manager.close()
        >>> manager.get_host()
        'No Connection'
    """

    def __init__(
        self,
        driver: DatabaseDriver,
        servers: Union[ServerPool, Iterable[ServerDescriptor]],
        persistent: bool = False,
        silent_errors_default: bool = False,
    ) -> None:
        """
        初始化连接管理器

        Args:
            driver: 实现 DatabaseDriver 接口的驱动
            servers: 服务器池或服务器描述序列
            persistent: 初始持久化标志
            silent_errors_default: 每个新连接建立时的静默错误模式
        """
        self.driver = driver
        self.pool = servers if isinstance(servers, ServerPool) else ServerPool(servers)
        self._persistent = persistent
        self._silent_errors_default = silent_errors_default
        self._connection: Optional[Connection] = None
        self._release_listeners: List[Callable[[Connection], None]] = []

    def add_release_listener(self, listener: Callable[[Connection], None]) -> None:
        """注册连接关闭或被替换时的回调"""
        self._release_listeners.append(listener)

    @property
    def current(self) -> Optional[Connection]:
        """当前活动连接，不存在时为None（不会触发连接）"""
        return self._connection

    @property
    def is_persistent(self) -> bool:
        return self._persistent

    def connection_exists(self) -> bool:
        return self._connection is not None

    def get_connection(self) -> Connection:
        """获取活动连接，不存在时建立新连接"""
        if self._connection is None:
            return self.connect()
        return self._connection

    def connect(self) -> Connection:
        """
        按服务器池当前顺序依次尝试连接

        Returns:
            Connection: 新的活动连接

        Raises:
            ConnectionError: 当所有服务器均连接失败时，attempted_hosts 记录尝试顺序
        """
        self._release()

        attempted: List[str] = []
        for server in self.pool:
            attempted.append(server.host)
            logger.debug(f"尝试连接服务器: {server.host} (persistent={self._persistent})")
            try:
                handle = self.driver.connect(server, self._persistent)
            except ConnectionError as e:
                logger.warning(f"服务器连接失败，尝试下一台: {server.host}: {e.message}")
                continue

            self._connection = Connection(
                handle, server, self._persistent, self._silent_errors_default
            )
            logger.info(
                f"数据库连接已建立: {server.host}/{server.database} "
                f"(尝试 {len(attempted)}/{len(self.pool)})"
            )
            return self._connection

        if not attempted:
            raise ConnectionError("服务器池为空，无法建立连接")
        logger.error(f"所有服务器均连接失败: {', '.join(attempted)}")
        raise ConnectionError(
            f"所有服务器均连接失败: {', '.join(attempted)}", attempted_hosts=attempted
        )

    def load_balance(self) -> None:
        """随机打乱服务器顺序，只影响下一次连接，不会重连"""
        self.pool.load_balance()
        logger.debug(f"服务器顺序已重排: {self.pool.hosts}")

    def set_persistent_connection(self, want: bool) -> None:
        """
        切换持久化模式

        与当前模式相同时不做任何操作；否则关闭活动连接（如有），
        并以新的持久化标志重新连接。
        """
        if want == self._persistent:
            return
        self._persistent = want
        logger.info(f"持久化模式切换为 {want}，重新建立连接")
        self.connect()

    def silent_errors(self, flag: bool = True) -> None:
        """
        设置当前连接的错误报告模式

        没有活动连接时不做任何操作，该模式不会保留到之后新建的连接。
        """
        if self._connection is None:
            logger.debug("没有活动连接，忽略静默错误模式设置")
            return
        self._connection.silent_errors = flag

    def close(self) -> None:
        """释放驱动句柄并清除主机与数据库信息"""
        if self._connection is not None:
            logger.info(f"关闭数据库连接: {self._connection.host}")
        self._release()

    def _release(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            connection.close()
        finally:
            for listener in self._release_listeners:
                listener(connection)

    def get_host(self) -> str:
        if self._connection is None:
            return NO_CONNECTION_HOST
        return self._connection.host

    def get_database_name(self) -> str:
        if self._connection is None:
            return NO_CONNECTION_DATABASE
        return self._connection.database

    def __repr__(self) -> str:
        return (
            f"ConnectionManager(hosts={self.pool.hosts!r}, "
            f"persistent={self._persistent}, connected={self.connection_exists()})"
        )
