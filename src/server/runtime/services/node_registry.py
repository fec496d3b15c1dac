"""
节点注册表：读取运行时目录 nodes/*.json 中描述的网络节点。
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

from ..schemas import NetworkNode


class NodeRegistry(Protocol):
    def get_nodes(self) -> list[NetworkNode]: ...


class DirectoryNodeRegistry:
    """以 nodes/ 目录为数据源的节点注册表，每次调用都重新读取。"""

    def __init__(self, root: Path) -> None:
        self.nodes_dir = Path(root) / "nodes"

    def get_nodes(self) -> list[NetworkNode]:
        if not self.nodes_dir.exists():
            return []
        nodes: list[NetworkNode] = []
        for node_path in sorted(self.nodes_dir.iterdir()):
            if node_path.name.startswith(".") or node_path.suffix != ".json":
                continue
            data = json.loads(node_path.read_text(encoding="utf-8"))
            nodes.append(NetworkNode.model_validate(data))
        return nodes
