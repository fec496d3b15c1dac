"""
网络配置脚手架生成服务。

按当前端口分配调用外部生成器命令（默认 yo fabric:network），
在运行时目录中生成网络拓扑与生命周期脚本。
"""

from __future__ import annotations

import asyncio
import subprocess
from pathlib import Path
from typing import Protocol, Sequence

from loguru import logger

from ..errors import ScaffoldError
from ..schemas import PortAssignment


class ScaffoldGenerator(Protocol):
    async def generate(self, destination: Path, name: str, docker_name: str, ports: PortAssignment) -> None: ...


def build_scaffold_args(destination: Path, name: str, docker_name: str, ports: PortAssignment) -> list[str]:
    """构造生成器命令行参数。"""
    return [
        f"--destination={destination}",
        f"--name={name}",
        f"--dockerName={docker_name}",
        f"--orderer={ports.orderer}",
        f"--peerRequest={ports.peer_request}",
        f"--peerChaincode={ports.peer_chaincode}",
        f"--certificateAuthority={ports.certificate_authority}",
        f"--couchDB={ports.couch_db}",
        f"--logspout={ports.logs}",
    ]


class CommandScaffoldGenerator:
    """通过外部命令生成网络配置。"""

    def __init__(self, command: Sequence[str]) -> None:
        self.command = list(command)

    async def generate(self, destination: Path, name: str, docker_name: str, ports: PortAssignment) -> None:
        await asyncio.to_thread(self._run, Path(destination), name, docker_name, ports)

    def _run(self, destination: Path, name: str, docker_name: str, ports: PortAssignment) -> None:
        if not self.command:
            raise ScaffoldError("未配置脚手架生成命令 scaffold_command")

        cmd = [*self.command, *build_scaffold_args(destination, name, docker_name, ports)]
        logger.info(f"执行脚手架生成命令：{' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                cwd=str(destination),
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except subprocess.CalledProcessError as e:
            logger.error(f"脚手架生成失败: {e.stderr}")
            raise ScaffoldError(f"脚手架生成失败: {e.stderr}") from e
        except OSError as e:
            logger.error(f"无法执行脚手架生成命令: {e}")
            raise ScaffoldError(f"无法执行脚手架生成命令: {e}") from e

        logger.info(f"脚手架生成成功: {result.stdout}")
