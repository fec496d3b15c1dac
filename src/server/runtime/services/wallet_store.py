"""
本地钱包存储服务。

每个钱包是 wallets_dir 下的一个目录，身份以 <identity>.id（JSON）保存。
导入前使用 cryptography 校验证书与私钥的 PEM 格式。
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Protocol

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from loguru import logger


class LocalWallet(Protocol):
    async def import_identity(self, cert_pem: str, key_pem: str, identity_name: str, msp_id: str) -> None: ...


class WalletStore(Protocol):
    async def create_local_store(self, name: str) -> LocalWallet: ...

    async def delete_local_store(self, name: str) -> None: ...


class FileSystemWallet:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def identity_path(self, identity_name: str) -> Path:
        return self.path / f"{identity_name}.id"

    async def import_identity(self, cert_pem: str, key_pem: str, identity_name: str, msp_id: str) -> None:
        """导入身份；证书或私钥无法解析时抛出 ValueError。"""
        cert = x509.load_pem_x509_certificate(cert_pem.encode("utf-8"))
        serialization.load_pem_private_key(key_pem.encode("utf-8"), password=None)

        self.path.mkdir(parents=True, exist_ok=True)
        record = {
            "name": identity_name,
            "msp_id": msp_id,
            "certificate": cert_pem,
            "private_key": key_pem,
        }
        self.identity_path(identity_name).write_text(
            json.dumps(record, ensure_ascii=False, indent=2), encoding="utf-8"
        )
        fp = cert.fingerprint(hashes.SHA256()).hex()
        logger.info(
            f"已导入身份 {identity_name} 到钱包 {self.path.name}: "
            f"subject={cert.subject.rfc4514_string()}, msp_id={msp_id}, sha256={fp}"
        )


class FileSystemWalletStore:
    """以目录为单位管理本地钱包。"""

    def __init__(self, home: Path) -> None:
        self.home = Path(home)

    async def create_local_store(self, name: str) -> FileSystemWallet:
        wallet_path = self.home / name
        wallet_path.mkdir(parents=True, exist_ok=True)
        return FileSystemWallet(wallet_path)

    async def delete_local_store(self, name: str) -> None:
        wallet_path = self.home / name
        if wallet_path.exists():
            shutil.rmtree(wallet_path)
            logger.info(f"已删除本地钱包: {wallet_path}")
