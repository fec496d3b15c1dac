"""
运行时测试共用的替身对象与 fixture。

FakeExecutor 以内存状态模拟生命周期脚本：start 使运行时存活，stop/teardown 使其停止，
is_running 在未运行时以 ScriptExecutionError 失败。
"""

import asyncio
import base64
import inspect
import json
from pathlib import Path

import pytest

from src.server.runtime.errors import ScriptExecutionError
from src.server.runtime.schemas import NetworkNode, PortAssignment
from src.server.runtime.services.local_runtime import LocalRuntime, RuntimeSettings


class FakeExecutor:
    def __init__(self) -> None:
        self.running = False
        self.calls: list[tuple[str, list[str]]] = []
        self.fail: set[str] = set()
        self.keep_running_on_stop = False
        self.hooks: dict = {}
        self.probe_gate: asyncio.Event | None = None
        self.active = 0
        self.max_active = 0

    def scripts(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def execute(self, script, args=None, sink=None):
        self.calls.append((script, list(args or [])))
        if script == "is_running":
            if self.probe_gate is not None:
                await self.probe_gate.wait()
            if not self.running:
                raise ScriptExecutionError(script, returncode=1)
            return

        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            # 让出事件循环，便于观察并发与过渡状态
            await asyncio.sleep(0)
            hook = self.hooks.get(script)
            if hook is not None:
                result = hook()
                if inspect.isawaitable(result):
                    await result
            if script in self.fail:
                raise ScriptExecutionError(script, returncode=1)
            if script == "start":
                self.running = True
            elif script in ("stop", "teardown") and not self.keep_running_on_stop:
                self.running = False
            if sink is not None:
                sink.write(f"{script} done")
        finally:
            self.active -= 1


class FakeGenerator:
    """记录调用，并在目标目录生成一个包含身份的钱包。"""

    def __init__(self) -> None:
        self.calls: list[tuple] = []

    async def generate(self, destination, name, docker_name, ports):
        self.calls.append((Path(destination), name, docker_name, ports))
        wallet_dir = Path(destination) / "wallets" / "local_wallet"
        wallet_dir.mkdir(parents=True, exist_ok=True)
        identity = {
            "name": "admin",
            "msp_id": "Org1MSP",
            "cert": base64.b64encode(b"CERT PEM").decode("utf-8"),
            "private_key": base64.b64encode(b"KEY PEM").decode("utf-8"),
        }
        (wallet_dir / "admin.json").write_text(json.dumps(identity), encoding="utf-8")


class FakeWallet:
    def __init__(self, store, name) -> None:
        self.store = store
        self.name = name

    async def import_identity(self, cert_pem, key_pem, identity_name, msp_id):
        self.store.imported.append((self.name, cert_pem, key_pem, identity_name, msp_id))


class FakeWalletStore:
    def __init__(self) -> None:
        self.created: list[str] = []
        self.deleted: list[str] = []
        self.imported: list[tuple] = []

    async def create_local_store(self, name):
        self.created.append(name)
        return FakeWallet(self, name)

    async def delete_local_store(self, name):
        self.deleted.append(name)


class FakeNodeRegistry:
    def __init__(self, nodes=None) -> None:
        self.nodes = [NetworkNode.model_validate(n) for n in (nodes or [])]

    def get_nodes(self):
        return list(self.nodes)


class FakeLogStream:
    def __init__(self) -> None:
        self.started: list[str] = []
        self.stops = 0

    def start(self, base_url, sink):
        self.started.append(base_url)

    def stop(self):
        self.stops += 1


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def wallet_store():
    return FakeWalletStore()


@pytest.fixture
def node_registry():
    return FakeNodeRegistry()


@pytest.fixture
def log_stream():
    return FakeLogStream()


@pytest.fixture
def persisted():
    return []


@pytest.fixture
def runtime_path(tmp_path):
    return tmp_path / "runtime" / "local_fabric"


@pytest.fixture
def runtime(runtime_path, executor, generator, wallet_store, node_registry, log_stream, persisted):
    settings = RuntimeSettings(
        name="local_fabric",
        docker_name="fabricvscodelocalfabric",
        path=runtime_path,
        chaincode_timeout=5,
        ports=PortAssignment(),
    )
    return LocalRuntime(
        settings,
        generator=generator,
        wallet_store=wallet_store,
        executor=executor,
        node_registry=node_registry,
        log_stream=log_stream,
        persist_ports=persisted.append,
    )


@pytest.fixture
def created_runtime(runtime, runtime_path):
    """工作目录已存在的运行时。"""
    runtime_path.mkdir(parents=True)
    return runtime
