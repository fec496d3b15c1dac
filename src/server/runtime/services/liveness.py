"""
运行时存活探测。

- SingleFlight: 并发调用合并为同一次进行中的执行，完成后立即清空，不做基于时间的缓存
- LivenessProber: 通过 is_running 脚本判断运行时是否存活，从不抛出异常
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

from loguru import logger

from ..errors import ScriptExecutionError
from .output import NullOutputSink
from .script_executor import ScriptExecutor

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """同一时刻最多只有一次底层调用在进行，其余调用方等待同一个结果。"""

    def __init__(self, func: Callable[..., Awaitable[T]]) -> None:
        self._func = func
        self._pending: asyncio.Future[T] | None = None

    @property
    def in_flight(self) -> bool:
        return self._pending is not None

    async def run(self, *args) -> T:
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._call(*args))
        # 单个调用方被取消时不影响共享的执行
        return await asyncio.shield(self._pending)

    async def _call(self, *args) -> T:
        try:
            return await self._func(*args)
        finally:
            # 先清空槽位，再唤醒等待方
            self._pending = None


class LivenessProber:
    """执行 is_running 探测脚本，失败一律视为未运行。"""

    def __init__(self, path: Path, executor: ScriptExecutor) -> None:
        self.path = Path(path)
        self.executor = executor

    async def probe(self, args: Sequence[str] | None = None) -> bool:
        if not self.path.exists():
            return False
        try:
            await self.executor.execute("is_running", args, sink=NullOutputSink())
            return True
        except ScriptExecutionError as e:
            logger.debug(f"运行时未处于运行状态: {e}")
            return False
        except Exception as e:
            logger.warning(f"存活探测失败，按未运行处理: {e}")
            return False
