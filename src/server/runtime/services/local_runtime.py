"""
本地运行时生命周期控制器。

LocalRuntime 维护运行时的 state 与 busy 标志：
- 每个变更操作（generate/start/stop/teardown/restart）在执行期间 busy=True 并处于过渡状态；
- 操作结束（无论成功或失败）后总是通过存活探测重新确定 state（STARTED 或 STOPPED）；
- 变更操作之间通过每个实例一把 asyncio.Lock 串行执行，busy 仅作为可观测标志；
- 并发的 is_running() 调用合并为一次探测。
"""

from __future__ import annotations

import asyncio
import base64
import contextlib
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Callable, Sequence

from loguru import logger

from ..errors import NodeNotFoundError
from ..schemas import Gateway, Identity, NetworkNode, NodeType, PortAssignment, RuntimeState, RuntimeStatus
from . import filesystem
from .liveness import LivenessProber, SingleFlight
from .log_stream import LogStream
from .node_registry import DirectoryNodeRegistry, NodeRegistry
from .output import OutputSink
from .scaffold import ScaffoldGenerator
from .script_executor import ScriptExecutor
from .wallet_store import WalletStore


@dataclass
class RuntimeSettings:
    """构造 LocalRuntime 所需的配置，由调用方显式传入。"""

    name: str
    docker_name: str
    path: Path
    chaincode_timeout: int
    ports: PortAssignment = field(default_factory=PortAssignment)


class LocalRuntime:
    def __init__(
        self,
        settings: RuntimeSettings,
        *,
        generator: ScaffoldGenerator,
        wallet_store: WalletStore,
        executor: ScriptExecutor | None = None,
        node_registry: NodeRegistry | None = None,
        log_stream: LogStream | None = None,
        persist_ports: Callable[[dict], object] | None = None,
    ) -> None:
        self.name = settings.name
        self.docker_name = settings.docker_name
        self.path = Path(settings.path)
        self.ports = settings.ports
        self.generator = generator
        self.wallet_store = wallet_store
        self.executor = executor or ScriptExecutor(self.path, settings.chaincode_timeout)
        self.node_registry = node_registry or DirectoryNodeRegistry(self.path)
        self.log_stream = log_stream or LogStream()
        self._persist_ports = persist_ports

        self.state: RuntimeState | None = None
        self.busy = False
        self._busy_listeners: list[Callable[[bool], None]] = []
        self._lock = asyncio.Lock()
        self._prober = LivenessProber(self.path, self.executor)
        self._is_running = SingleFlight(self._prober.probe)

    # ---- 状态 ----

    def is_busy(self) -> bool:
        return self.busy

    def get_state(self) -> RuntimeState | None:
        return self.state

    def get_status(self) -> RuntimeStatus:
        return RuntimeStatus(
            name=self.name,
            path=str(self.path),
            created=self.path.exists(),
            busy=self.busy,
            state=self.state,
            ports=self.ports,
        )

    def on_busy(self, listener: Callable[[bool], None]) -> None:
        """注册 busy 变化回调。"""
        self._busy_listeners.append(listener)

    def _set_busy(self, busy: bool) -> None:
        self.busy = busy
        for listener in list(self._busy_listeners):
            try:
                listener(busy)
            except Exception as e:
                logger.warning(f"busy 回调执行失败: {e}")

    async def refresh_state(self) -> RuntimeState | None:
        """探测一次存活状态并更新 state，不标记 busy。

        探测期间若有变更操作开始，结果被丢弃，state 保持该操作的过渡状态。
        """
        running = await self.is_running()
        if not self.busy and not self._lock.locked():
            self.state = RuntimeState.STARTED if running else RuntimeState.STOPPED
        return self.state

    async def _reconcile_state(self) -> None:
        running = await self.is_running()
        self.state = RuntimeState.STARTED if running else RuntimeState.STOPPED

    @contextlib.asynccontextmanager
    async def _operation(self, transient: RuntimeState) -> AsyncIterator[None]:
        """变更操作的包裹：串行执行、标记 busy，结束时必定恢复 busy 并按探测结果确定 state。"""
        async with self._lock:
            self._set_busy(True)
            self.state = transient
            logger.info(f"运行时 {self.name} 进入 {transient.value} 状态")
            try:
                yield
            finally:
                self._set_busy(False)
                await self._reconcile_state()
                logger.info(f"运行时 {self.name} 操作结束，当前状态: {self.state.value}")

    # ---- 目录与钱包 ----

    async def create(self) -> None:
        """删除并重建运行时目录，然后生成网络配置。"""
        await asyncio.to_thread(self._reset_directory)
        await self.generator.generate(self.path, self.name, self.docker_name, self.ports)
        logger.info(f"运行时目录已创建: {self.path}")

    def _reset_directory(self) -> None:
        if self.path.exists():
            shutil.rmtree(self.path)
        self.path.mkdir(parents=True, exist_ok=True)

    async def is_created(self) -> bool:
        return self.path.exists()

    async def is_generated(self) -> bool:
        try:
            if not await self.is_created():
                return False
            await self.executor.execute("is_generated")
            return True
        except Exception as e:
            logger.debug(f"运行时尚未生成: {e}")
            return False

    async def import_wallets_and_identities(self) -> None:
        """确保运行时目录中的每个钱包都已创建，并导入其中的身份。"""
        for wallet_name in await self.get_wallet_names():
            wallet = await self.wallet_store.create_local_store(wallet_name)
            for identity in await self.get_identities(wallet_name):
                await wallet.import_identity(
                    base64.b64decode(identity.cert).decode("utf-8"),
                    base64.b64decode(identity.private_key).decode("utf-8"),
                    identity.name,
                    identity.msp_id,
                )

    async def delete_wallets_and_identities(self) -> None:
        for wallet_name in await self.get_wallet_names():
            await self.wallet_store.delete_local_store(wallet_name)

    async def get_gateways(self) -> list[Gateway]:
        return await asyncio.to_thread(filesystem.get_gateways, self.path)

    async def get_wallet_names(self) -> list[str]:
        return await asyncio.to_thread(filesystem.get_wallet_names, self.path)

    async def get_identities(self, wallet_name: str) -> list[Identity]:
        return await asyncio.to_thread(filesystem.get_identities, self.path, wallet_name)

    # ---- 生命周期操作 ----

    async def generate(self, sink: OutputSink | None = None) -> None:
        async with self._operation(RuntimeState.STARTING):
            await self.executor.execute("generate", [], sink)

    async def start(self, sink: OutputSink | None = None) -> None:
        async with self._operation(RuntimeState.STARTING):
            await self.executor.execute("start", [], sink)

    async def stop(self, sink: OutputSink | None = None) -> None:
        async with self._operation(RuntimeState.STOPPING):
            await self._stop_inner(sink)

    async def teardown(self, sink: OutputSink | None = None) -> None:
        async with self._operation(RuntimeState.STOPPING):
            try:
                self.stop_logs()
                await self.executor.execute("teardown", [], sink)
            finally:
                # 即使 teardown 脚本失败也重建目录，脚本异常继续向上抛出
                await self.create()
                await self.import_wallets_and_identities()

    async def restart(self, sink: OutputSink | None = None) -> None:
        async with self._operation(RuntimeState.RESTARTING):
            await self._stop_inner(sink)
            await self.executor.execute("start", [], sink)

    async def _stop_inner(self, sink: OutputSink | None) -> None:
        self.stop_logs()
        await self.executor.execute("stop", [], sink)

    async def is_running(self, args: Sequence[str] | None = None) -> bool:
        return await self._is_running.run(args)

    async def kill_chaincode(self, args: Sequence[str] | None = None, sink: OutputSink | None = None) -> None:
        await self.executor.execute("kill_chaincode", args, sink)

    # ---- 节点查询 ----

    async def get_nodes(self) -> list[NetworkNode]:
        return await asyncio.to_thread(self.node_registry.get_nodes)

    async def _find_node(self, node_type: NodeType, message: str) -> NetworkNode:
        for node in await self.get_nodes():
            if node.type == node_type:
                return node
        raise NodeNotFoundError(message)

    async def get_peer_chaincode_url(self) -> str:
        peer = await self._find_node(NodeType.PEER, "没有可用的 peer 节点")
        return peer.chaincode_url

    async def get_logs_url(self) -> str:
        logspout = await self._find_node(NodeType.LOGSPOUT, "没有可用的 logspout 节点")
        return logspout.api_url

    async def get_peer_container_name(self) -> str:
        peer = await self._find_node(NodeType.PEER, "没有可用的 peer 节点")
        return peer.container_name

    # ---- 日志 ----

    async def start_logs(self, sink: OutputSink) -> None:
        url = await self.get_logs_url()
        self.log_stream.start(url, sink)

    def stop_logs(self) -> None:
        self.log_stream.stop()

    # ---- 配置 ----

    async def update_user_settings(self) -> None:
        """将当前端口分配写入持久化配置。"""
        if self._persist_ports is None:
            logger.warning("未配置端口持久化，跳过保存")
            return
        await asyncio.to_thread(self._persist_ports, self.ports.model_dump())
