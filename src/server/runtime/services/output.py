"""
脚本输出接收端。

生命周期脚本与日志流的输出按行写入 OutputSink：
- LoggerOutputSink: 默认接收端，转发到 loguru
- BufferedOutputSink: 收集输出，供 HTTP 接口返回
"""

from __future__ import annotations

from typing import Protocol

from loguru import logger


class OutputSink(Protocol):
    def write(self, line: str) -> None: ...


class LoggerOutputSink:
    """将输出逐行写入 loguru。"""

    def __init__(self, prefix: str = "runtime") -> None:
        self.prefix = prefix

    def write(self, line: str) -> None:
        logger.info(f"[{self.prefix}] {line}")


class BufferedOutputSink:
    """收集输出行，可选地同时转发到另一个接收端。"""

    def __init__(self, forward: OutputSink | None = None) -> None:
        self.lines: list[str] = []
        self.forward = forward

    def write(self, line: str) -> None:
        self.lines.append(line)
        if self.forward is not None:
            self.forward.write(line)


class NullOutputSink:
    """丢弃所有输出，用于探测类脚本。"""

    def write(self, line: str) -> None:
        pass
