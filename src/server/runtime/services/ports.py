"""
端口分配：为新建的运行时挑选本机可用的 TCP 端口。
"""

from __future__ import annotations

import socket

from ..schemas import PortAssignment

PORT_NAMES = (
    "orderer",
    "peer_request",
    "peer_chaincode",
    "certificate_authority",
    "couch_db",
    "logs",
)


def is_port_free(port: int, host: str = "127.0.0.1") -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.settimeout(0.5)
        try:
            return s.connect_ex((host, port)) != 0
        except OSError:
            return False


def allocate_ports(start: int = 17050, end: int = 17200) -> PortAssignment:
    """从 start 开始依次挑选空闲端口，依序分配给各个服务。"""
    chosen: list[int] = []
    port = start
    while len(chosen) < len(PORT_NAMES):
        if port > end:
            raise RuntimeError(f"端口范围 {start}-{end} 内没有足够的空闲端口")
        if is_port_free(port):
            chosen.append(port)
        port += 1
    return PortAssignment(**dict(zip(PORT_NAMES, chosen)))
