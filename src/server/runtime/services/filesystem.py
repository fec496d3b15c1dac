"""
运行时目录下的只读枚举：gateways、wallets、wallets/<name>。

目录不存在时返回空列表；条目按字典序排序并忽略以 . 开头的隐藏文件。
"""

from __future__ import annotations

import json
from pathlib import Path

from ..schemas import Gateway, Identity


def _list_entries(directory: Path) -> list[Path]:
    if not directory.exists():
        return []
    names = sorted(p.name for p in directory.iterdir())
    return [directory / name for name in names if not name.startswith(".")]


def get_gateways(root: Path) -> list[Gateway]:
    """读取 gateways/ 下的连接配置；JSON 损坏时直接抛出。"""
    gateways: list[Gateway] = []
    for gateway_path in _list_entries(Path(root) / "gateways"):
        connection_profile = json.loads(gateway_path.read_text(encoding="utf-8"))
        if not isinstance(connection_profile, dict) or "name" not in connection_profile:
            raise ValueError(f"连接配置缺少 name 字段: {gateway_path}")
        gateways.append(
            Gateway(
                name=connection_profile["name"],
                path=str(gateway_path),
                connection_profile=connection_profile,
            )
        )
    return gateways


def get_wallet_names(root: Path) -> list[str]:
    return [p.name for p in _list_entries(Path(root) / "wallets")]


def get_identities(root: Path, wallet_name: str) -> list[Identity]:
    identities: list[Identity] = []
    for identity_path in _list_entries(Path(root) / "wallets" / wallet_name):
        data = json.loads(identity_path.read_text(encoding="utf-8"))
        identities.append(Identity.model_validate(data))
    return identities
