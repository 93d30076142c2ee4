"""
路径处理工具模块

提供跨平台的配置目录获取和目录创建功能，供配置文件、密钥文件和日志文件定位使用。
"""

import os
import platform
from pathlib import Path


class PathHelper:
    """
    路径辅助类 - 提供跨平台的路径处理功能

    所有方法均为静态方法，无需实例化即可使用。

    Example:
        >>> config_dir = PathHelper.get_user_config_dir("db_access")
        >>> PathHelper.ensure_dir_exists(config_dir / "logs")
        True
    """

    @staticmethod
    def get_user_config_dir(app_name: str = "db_access") -> Path:
        """
        获取用户配置目录路径

        根据操作系统类型获取标准的用户配置目录，并创建应用特定的子目录。
        环境变量 DB_ACCESS_CONFIG_DIR 存在时优先使用。

        Args:
            app_name (str): 应用名称，默认为"db_access"

        Returns:
            Path: 配置目录的Path对象

        Raises:
            ValueError: 当应用名称为空或不是字符串时
            OSError: 当无法创建目录时（仅在回退方案也失败时）

        Note:
            - Windows: %APPDATA%\\{app_name}
            - macOS: ~/Library/Application Support/{app_name}
            - Linux: ~/.config/{app_name}
        """
        if not app_name or not isinstance(app_name, str):
            raise ValueError("应用名称不能为空且必须是字符串")

        override = os.environ.get("DB_ACCESS_CONFIG_DIR")
        system = platform.system().lower()

        try:
            if override:
                config_dir = Path(override)
            else:
                if system == "windows":
                    base_dir = Path(os.environ.get("APPDATA", Path.home()))
                elif system == "darwin":
                    base_dir = Path.home() / "Library" / "Application Support"
                else:
                    base_dir = Path.home() / ".config"
                config_dir = base_dir / app_name

            config_dir.mkdir(parents=True, exist_ok=True)
            return config_dir

        except OSError as e:
            # 回退到当前目录（隐藏目录）
            fallback_dir = Path.cwd() / f".{app_name}"
            try:
                fallback_dir.mkdir(exist_ok=True)
                return fallback_dir
            except OSError:
                raise OSError(f"无法创建配置目录: {str(e)}")

    @staticmethod
    def ensure_dir_exists(dir_path: str | Path) -> bool:
        """
        确保目录存在，如果不存在则递归创建

        Args:
            dir_path (str | Path): 需要确保存在的目录路径

        Returns:
            bool: 目录是否存在或是否成功创建

        Raises:
            OSError: 当目录创建失败时（权限不足等）
        """
        if not dir_path:
            return False

        dir_path_obj = Path(dir_path) if isinstance(dir_path, str) else dir_path
        try:
            if dir_path_obj.exists():
                return dir_path_obj.is_dir()
            dir_path_obj.mkdir(parents=True, exist_ok=True)
            return True
        except OSError as e:
            raise OSError(f"无法创建目录 '{dir_path}': {str(e)}")
