"""
服务器密码加密模块

使用 cryptography.fernet 对配置文件中保存的服务器密码进行对称加密。
密钥通过 PBKDF2 从随机口令和盐值派生，口令与盐值以 TOML 格式保存在
配置目录下的 encryption.key 文件中。

加密后的密码以 "enc:" 前缀写入配置文件，读取时自动解密；
没有前缀的密码按明文处理。
"""

import base64
import secrets
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional

import tomli_w
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..utils.logging_utils import get_logger
from .exceptions import CryptoError

logger = get_logger(__name__)

# 加密密码在配置文件中的前缀
ENCRYPTED_PREFIX = "enc:"


class CryptoManager:
    """
    加密管理器类

    提供基于Fernet的对称加密功能，使用PBKDF2进行密钥派生。

    Example:
        >>> crypto = CryptoManager()
        >>> stored = crypto.encrypt_password("secret")
        >>> stored.startswith("enc:")
        True
        >>> crypto.decrypt_password(stored)
        'secret'
    """

    DEFAULT_SALT_LENGTH = 16
    DEFAULT_PASSWORD_LENGTH = 32
    DEFAULT_ITERATIONS = 480000  # OWASP推荐的迭代次数

    def __init__(self, password: Optional[str] = None, salt: Optional[bytes] = None):
        """
        初始化加密管理器

        Args:
            password: 派生口令，为None时自动生成安全的随机口令
            salt: 盐值，为None时自动生成

        Raises:
            CryptoError: 当密钥派生失败时
        """
        self.password = password or base64.urlsafe_b64encode(
            secrets.token_bytes(self.DEFAULT_PASSWORD_LENGTH)
        ).decode("utf-8")
        self.salt = salt or secrets.token_bytes(self.DEFAULT_SALT_LENGTH)

        try:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=self.salt,
                iterations=self.DEFAULT_ITERATIONS,
            )
            key = base64.urlsafe_b64encode(kdf.derive(self.password.encode("utf-8")))
            self.fernet = Fernet(key)
        except Exception as e:
            logger.error(f"加密密钥派生失败: {str(e)}")
            raise CryptoError(f"加密系统初始化失败: {str(e)}", operation="derive")

    def encrypt(self, data: str) -> str:
        """
        加密字符串数据

        Raises:
            CryptoError: 当加密过程失败时
        """
        if not isinstance(data, str):
            raise ValueError("加密数据必须是字符串")
        try:
            return self.fernet.encrypt(data.encode("utf-8")).decode("utf-8")
        except Exception as e:
            logger.error(f"数据加密失败: {str(e)}")
            raise CryptoError(f"加密失败: {str(e)}", operation="encrypt")

    def decrypt(self, encrypted_data: str) -> str:
        """
        解密加密数据

        Raises:
            CryptoError: 当数据被篡改、密钥不匹配或格式无效时
        """
        if not encrypted_data or not isinstance(encrypted_data, str):
            raise ValueError("加密数据不能为空且必须是字符串")
        try:
            return self.fernet.decrypt(encrypted_data.encode("utf-8")).decode("utf-8")
        except InvalidToken:
            logger.error("解密令牌无效")
            raise CryptoError(
                "解密失败: 加密数据可能被篡改或密钥不匹配", operation="decrypt"
            )

    def encrypt_password(self, password: str) -> str:
        """加密服务器密码并加上 enc: 前缀，便于写入配置文件"""
        return ENCRYPTED_PREFIX + self.encrypt(password)

    def decrypt_password(self, stored: str) -> str:
        """
        还原配置文件中保存的服务器密码

        带 enc: 前缀的值会被解密，其余值按明文原样返回。
        """
        if isinstance(stored, str) and stored.startswith(ENCRYPTED_PREFIX):
            return self.decrypt(stored[len(ENCRYPTED_PREFIX):])
        return stored

    def get_key_info(self) -> Dict[str, Any]:
        """获取密钥信息（用于持久化存储），应安全保存"""
        return {
            "salt": base64.urlsafe_b64encode(self.salt).decode("utf-8"),
            "password": self.password,
            "iterations": self.DEFAULT_ITERATIONS,
        }

    @classmethod
    def from_saved_key(cls, password: str, salt: str) -> "CryptoManager":
        """
        从保存的密钥信息创建加密管理器实例

        Raises:
            CryptoError: 当密码或盐值格式无效时
        """
        if not password or not salt:
            raise CryptoError("密码和盐值不能为空", operation="load")
        try:
            salt_bytes = base64.urlsafe_b64decode(salt.encode("utf-8"))
        except ValueError as e:
            raise CryptoError(f"密钥恢复失败: {str(e)}", operation="load")
        return cls(password, salt_bytes)

    @classmethod
    def load_or_create(cls, key_file: Path) -> "CryptoManager":
        """
        从密钥文件加载加密管理器，文件不存在时生成新密钥并保存

        Args:
            key_file: 密钥文件路径（TOML格式）

        Raises:
            CryptoError: 当密钥文件无效或无法写入时
        """
        if key_file.exists():
            try:
                with open(key_file, "rb") as f:
                    key_data = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as e:
                raise CryptoError(f"加密密钥加载失败: {str(e)}", operation="load")

            if "password" not in key_data or "salt" not in key_data:
                raise CryptoError("密钥文件格式无效", operation="load")

            logger.debug(f"加密密钥加载成功: {key_file}")
            return cls.from_saved_key(key_data["password"], key_data["salt"])

        crypto = cls()
        try:
            key_file.parent.mkdir(parents=True, exist_ok=True)
            with open(key_file, "wb") as f:
                f.write(tomli_w.dumps(crypto.get_key_info()).encode("utf-8"))
        except OSError as e:
            raise CryptoError(f"加密密钥创建失败: {str(e)}", operation="create")

        logger.info(f"新加密密钥创建成功: {key_file}")
        return crypto

    def __repr__(self) -> str:
        return "CryptoManager(password='***', salt=b'...')"
