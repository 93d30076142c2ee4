"""
配置管理模块

使用 TOML 格式保存数据库访问层的配置：驱动、持久化标志、静默错误模式、
连接池参数、候选服务器列表与日志设置。服务器密码使用 CryptoManager 加密保存。
"""

import tomllib
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import tomli_w

from ..utils.logging_utils import get_logger
from ..utils.path_utils import PathHelper
from .crypto import ENCRYPTED_PREFIX, CryptoManager
from .exceptions import ConfigError, CryptoError
from .servers import ServerDescriptor

logger = get_logger(__name__)

KEY_FILE_NAME = "encryption.key"

DEFAULT_CONFIG: Dict[str, Any] = {
    "version": "1.0.0",
    "database": {
        "driver": "sqlite",
        "persistent": False,
        "silent_errors": False,
        "load_balance": False,
        "legacy_auto_escape": False,
        "pool": {},
        "servers": [],
    },
    "logging": {
        "level": "INFO",
        "log_to_console": False,
        "log_to_file": True,
    },
}

_MISSING = object()


class ConfigScope:
    """
    配置作用域

    支持以点分隔的键路径逐级查找，表（TOML table）以新的 ConfigScope 返回。

    Example:
        >>> scope = ConfigScope({"database": {"pool": {"pool_size": 5}}})
        >>> scope.get("database.pool.pool_size")
        5
        >>> scope.get("database.pool").get("pool_size")
        5
    """

    def __init__(self, data: Dict[str, Any]) -> None:
        self._data = data

    def _lookup(self, dotted_key: str) -> Any:
        node: Any = self._data
        for part in dotted_key.split("."):
            if not isinstance(node, dict) or part not in node:
                return _MISSING
            node = node[part]
        return node

    def get(self, dotted_key: str, default: Any = None) -> Any:
        """返回键对应的值，表返回 ConfigScope，不存在时返回 default"""
        value = self._lookup(dotted_key)
        if value is _MISSING:
            return default
        if isinstance(value, dict):
            return ConfigScope(value)
        return value

    def get_array(self, dotted_key: str) -> List[str]:
        """返回字符串列表：标量被包装为单元素列表，不存在时返回空列表"""
        value = self._lookup(dotted_key)
        if value is _MISSING or value is None:
            return []
        if isinstance(value, list):
            return [str(item) for item in value]
        return [str(value)]

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._data)

    def __contains__(self, dotted_key: str) -> bool:
        return self._lookup(dotted_key) is not _MISSING

    def __repr__(self) -> str:
        return f"ConfigScope(keys={sorted(self._data)!r})"


class ConfigManager(ConfigScope):
    """
    配置管理器

    Attributes:
        config_dir (Path): 配置目录
        config_path (Path): 配置文件路径

    Example:
        >>> config = ConfigManager(config_dir=Path("/tmp/db_access"))
        >>> config.add_server(ServerDescriptor("db1", "app", "secret", "app"))
        >>> config.get_servers()[0].password
        'secret'
    """

    def __init__(
        self,
        app_name: str = "db_access",
        config_file: str = "database.toml",
        config_dir: Optional[Union[str, Path]] = None,
    ) -> None:
        """
        初始化配置管理器，配置文件不存在时创建默认配置

        Args:
            app_name: 应用名称，决定默认配置目录
            config_file: 配置文件名称
            config_dir: 配置目录，为None时使用用户配置目录

        Raises:
            ConfigError: 配置文件无法创建、解析或结构无效时
        """
        self.app_name = app_name
        self.config_dir = Path(config_dir) if config_dir else PathHelper.get_user_config_dir(app_name)
        self.config_path = self.config_dir / config_file
        self._crypto: Optional[CryptoManager] = None

        if not self.config_path.exists():
            self._create_default_config()
        super().__init__(self._load_config())

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ConfigManager":
        """从指定路径的配置文件创建配置管理器"""
        path = Path(path)
        return cls(config_file=path.name, config_dir=path.parent)

    def _create_default_config(self) -> None:
        PathHelper.ensure_dir_exists(self.config_dir)
        config = {**DEFAULT_CONFIG, "metadata": {"created": _now()}}
        self._save_config(config)
        logger.info(f"创建默认配置文件: {self.config_path}")

    def _load_config(self) -> Dict[str, Any]:
        try:
            with open(self.config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"配置文件解析失败: {str(e)}")
            raise ConfigError(
                f"配置文件解析失败: {str(e)}", config_file=str(self.config_path)
            ) from e
        except OSError as e:
            logger.error(f"加载配置文件失败: {str(e)}")
            raise ConfigError(
                f"配置文件加载失败: {str(e)}", config_file=str(self.config_path)
            ) from e

        self._validate(data)
        return data

    def _validate(self, data: Dict[str, Any]) -> None:
        database = data.get("database", {})
        if not isinstance(database, dict):
            raise ConfigError(
                "database 必须是表", config_file=str(self.config_path), config_key="database"
            )
        servers = database.get("servers", [])
        if not isinstance(servers, list):
            raise ConfigError(
                "database.servers 必须是表数组",
                config_file=str(self.config_path),
                config_key="database.servers",
            )
        for index, server in enumerate(servers):
            if not isinstance(server, dict) or not server.get("host"):
                raise ConfigError(
                    f"第 {index + 1} 个服务器缺少 host",
                    config_file=str(self.config_path),
                    config_key="database.servers",
                )
        pool = database.get("pool", {})
        if not isinstance(pool, dict):
            raise ConfigError(
                "database.pool 必须是表",
                config_file=str(self.config_path),
                config_key="database.pool",
            )

    def _save_config(self, config: Dict[str, Any]) -> None:
        config.setdefault("metadata", {})["last_modified"] = _now()
        try:
            with open(self.config_path, "wb") as f:
                f.write(tomli_w.dumps(config).encode("utf-8"))
        except OSError as e:
            logger.error(f"保存配置文件失败: {str(e)}")
            raise ConfigError(
                f"配置文件保存失败: {str(e)}", config_file=str(self.config_path)
            ) from e

    def reload(self) -> None:
        """重新读取配置文件"""
        self._data = self._load_config()
        logger.debug(f"配置已重新加载: {self.config_path}")

    @property
    def crypto(self) -> CryptoManager:
        """加密管理器，首次使用时加载或创建密钥文件"""
        if self._crypto is None:
            try:
                self._crypto = CryptoManager.load_or_create(self.config_dir / KEY_FILE_NAME)
            except CryptoError as e:
                raise ConfigError(f"加密密钥不可用: {e.message}", config_key=KEY_FILE_NAME) from e
        return self._crypto

    def _raw_servers(self) -> List[Dict[str, Any]]:
        return self._data.setdefault("database", {}).setdefault("servers", [])

    def get_servers(self) -> List[ServerDescriptor]:
        """
        读取候选服务器列表，自动解密 enc: 前缀的密码

        Raises:
            ConfigError: 密码无法解密时
        """
        servers = []
        for raw in self._raw_servers():
            entry = dict(raw)
            password = entry.get("password", "")
            if isinstance(password, str) and password.startswith(ENCRYPTED_PREFIX):
                try:
                    entry["password"] = self.crypto.decrypt_password(password)
                except CryptoError as e:
                    raise ConfigError(
                        f"服务器 {entry.get('host')} 的密码解密失败: {e.message}",
                        config_file=str(self.config_path),
                        config_key="database.servers",
                    ) from e
            servers.append(ServerDescriptor.from_dict(entry))
        return servers

    def list_servers(self) -> List[str]:
        return [str(raw.get("host", "")) for raw in self._raw_servers()]

    def add_server(self, server: ServerDescriptor) -> None:
        """
        添加或替换（同 host）候选服务器并保存，密码加密后写入

        Raises:
            ConfigError: 保存失败时
        """
        entry: Dict[str, Any] = {"host": server.host}
        if server.username:
            entry["username"] = server.username
        if server.password:
            entry["password"] = self.crypto.encrypt_password(server.password)
        if server.database:
            entry["database"] = server.database

        servers = self._raw_servers()
        for index, raw in enumerate(servers):
            if raw.get("host") == server.host:
                servers[index] = entry
                break
        else:
            servers.append(entry)

        self._save_config(self._data)
        logger.info(f"服务器配置已保存: {server.host}")

    def remove_server(self, host: str) -> bool:
        """
        删除候选服务器

        Returns:
            bool: 服务器存在并已删除时返回 True
        """
        servers = self._raw_servers()
        remaining = [raw for raw in servers if raw.get("host") != host]
        if len(remaining) == len(servers):
            logger.warning(f"服务器配置不存在: {host}")
            return False
        self._data["database"]["servers"] = remaining
        self._save_config(self._data)
        logger.info(f"服务器配置已删除: {host}")
        return True

    def __repr__(self) -> str:
        return f"ConfigManager(config_path={str(self.config_path)!r})"


def _now() -> str:
    return datetime.now().astimezone().isoformat()
