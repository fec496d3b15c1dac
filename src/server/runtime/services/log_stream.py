"""
日志流控制：从日志收集节点（logspout）的 <url>/logs 持续读取日志并写入输出接收端。

请求在后台任务中运行，stop() 通过取消任务中止连接。
"""

from __future__ import annotations

import asyncio
import contextlib

import httpx
from loguru import logger

from .output import OutputSink


class LogStream:
    def __init__(self, client_factory=None) -> None:
        self._client_factory = client_factory or (lambda: httpx.AsyncClient(timeout=None))
        self._task: asyncio.Task | None = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, base_url: str, sink: OutputSink) -> asyncio.Task:
        """开始转发日志；已有的日志流会先被中止。"""
        self.stop()
        url = f"{base_url.rstrip('/')}/logs"
        self._task = asyncio.create_task(self._pump(url, sink))
        logger.info(f"日志流已启动: {url}")
        return self._task

    def stop(self) -> None:
        """中止当前日志流；没有日志流时不做任何事。"""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            logger.info("日志流已停止")

    async def wait_stopped(self, timeout: float = 5) -> None:
        task = self._task
        self.stop()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError, asyncio.TimeoutError):
                await asyncio.wait_for(task, timeout=timeout)

    async def _pump(self, url: str, sink: OutputSink) -> None:
        try:
            async with self._client_factory() as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        sink.write(line)
        except httpx.HTTPError as e:
            logger.warning(f"日志流连接失败：{url}，错误：{e}")
        except Exception as e:
            # 后台任务无人等待结果，异常在此记录
            logger.error(f"日志流转发异常终止：{url}，错误：{e}")
