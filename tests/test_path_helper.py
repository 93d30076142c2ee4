"""
路径辅助工具测试
"""

import os
import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from db_access.utils.path_utils import PathHelper


class TestPathHelper:
    """PathHelper测试类"""

    def setup_method(self):
        """测试方法 setup"""
        self.test_dir = Path(tempfile.mkdtemp())

    def teardown_method(self):
        """测试方法 teardown"""
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_get_user_config_dir_linux(self):
        """测试Linux系统下的配置目录获取"""
        with patch.dict(os.environ, {}, clear=False) as environ:
            environ.pop("DB_ACCESS_CONFIG_DIR", None)
            with patch("db_access.utils.path_utils.platform.system", return_value="Linux"), patch(
                "db_access.utils.path_utils.Path.home", return_value=self.test_dir
            ):
                config_dir = PathHelper.get_user_config_dir("test_app")

        assert config_dir == self.test_dir / ".config" / "test_app"
        assert config_dir.exists()

    def test_get_user_config_dir_macos(self):
        """测试macOS系统下的配置目录获取"""
        with patch.dict(os.environ, {}, clear=False) as environ:
            environ.pop("DB_ACCESS_CONFIG_DIR", None)
            with patch("db_access.utils.path_utils.platform.system", return_value="Darwin"), patch(
                "db_access.utils.path_utils.Path.home", return_value=self.test_dir
            ):
                config_dir = PathHelper.get_user_config_dir("test_app")

        assert config_dir == self.test_dir / "Library" / "Application Support" / "test_app"

    def test_environment_override(self):
        """测试环境变量指定配置目录"""
        target = self.test_dir / "custom"
        with patch.dict(os.environ, {"DB_ACCESS_CONFIG_DIR": str(target)}):
            config_dir = PathHelper.get_user_config_dir("test_app")

        assert config_dir == target
        assert target.exists()

    @pytest.mark.parametrize("app_name", ["", None])
    def test_invalid_app_name(self, app_name):
        """测试无效的应用名称"""
        with pytest.raises(ValueError):
            PathHelper.get_user_config_dir(app_name)

    def test_ensure_dir_exists(self):
        """测试递归创建目录"""
        target = self.test_dir / "a" / "b" / "c"
        assert PathHelper.ensure_dir_exists(target) is True
        assert target.is_dir()
        assert PathHelper.ensure_dir_exists(str(target)) is True
