"""
生命周期脚本执行服务。

在运行时工作目录中执行 <script>.sh（Windows 下为 <script>.cmd），
合并 stdout/stderr 并逐行实时写入输出接收端。
脚本被取消时终止子进程并回收。
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import sys
from pathlib import Path
from typing import Mapping, Sequence

from loguru import logger

from ..errors import ScriptExecutionError
from .output import LoggerOutputSink, OutputSink


_READ_CHUNK_SIZE = 65536


def _decode_line(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r")


def build_script_command(script: str, args: Sequence[str] = (), platform: str | None = None) -> list[str]:
    """按平台约定构造脚本调用命令。"""
    platform = platform or sys.platform
    if platform == "win32":
        return ["cmd", "/c", f"{script}.cmd", *args]
    return ["/bin/sh", f"{script}.sh", *args]


class ScriptExecutor:
    """在运行时目录执行生命周期脚本。"""

    def __init__(self, cwd: Path, chaincode_timeout: int, extra_env: Mapping[str, str] | None = None) -> None:
        self.cwd = Path(cwd)
        self.chaincode_timeout = chaincode_timeout
        self.extra_env = dict(extra_env or {})

    def build_env(self) -> dict[str, str]:
        """在当前进程环境之上叠加部署环境变量。"""
        return {
            **os.environ,
            "CORE_CHAINCODE_MODE": "dev",
            # 与 request-timeout 一起决定交易超时
            "CORE_CHAINCODE_EXECUTETIMEOUT": f"{self.chaincode_timeout}s",
            **self.extra_env,
        }

    async def execute(
        self,
        script: str,
        args: Sequence[str] | None = None,
        sink: OutputSink | None = None,
    ) -> None:
        """执行脚本，非零退出码时抛出 ScriptExecutionError。"""
        sink = sink or LoggerOutputSink(script)
        cmd = build_script_command(script, list(args or []))
        logger.debug(f"执行生命周期脚本: {' '.join(cmd)} (cwd={self.cwd})")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(self.cwd),
                env=self.build_env(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ScriptExecutionError(script, reason=str(e)) from e

        assert proc.stdout is not None
        try:
            # 按块读取后自行分行，单行长度不受 StreamReader 上限约束
            pending = bytearray()
            while True:
                chunk = await proc.stdout.read(_READ_CHUNK_SIZE)
                if not chunk:
                    break
                pending.extend(chunk)
                *complete, rest = pending.split(b"\n")
                pending = bytearray(rest)
                for raw in complete:
                    sink.write(_decode_line(raw))
            if pending:
                sink.write(_decode_line(pending))
            returncode = await proc.wait()
        finally:
            if proc.returncode is None:
                logger.warning(f"生命周期脚本 {script} 被中断，终止子进程")
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()

        if returncode != 0:
            raise ScriptExecutionError(script, returncode=returncode)
