"""
本地运行时管理服务模块集合。

此包包含运行时生命周期控制器及其协作组件，按功能拆分以提高可维护性。
get_runtime() 基于全局配置构造进程内唯一的 LocalRuntime。
"""

from __future__ import annotations

from src.server.config import Config, config, persist_runtime_ports

from .local_runtime import LocalRuntime, RuntimeSettings
from .output import BufferedOutputSink, LoggerOutputSink, NullOutputSink, OutputSink
from .scaffold import CommandScaffoldGenerator
from .wallet_store import FileSystemWalletStore

_runtime: LocalRuntime | None = None


def build_runtime(cfg: Config) -> LocalRuntime:
    """根据配置构造 LocalRuntime，配置值在此处一次性传入。"""
    settings = RuntimeSettings(
        name=cfg.runtime_name,
        docker_name=cfg.runtime_docker_name,
        path=cfg.resolved_runtime_dir(),
        chaincode_timeout=cfg.chaincode_timeout,
        ports=cfg.runtime_ports,
    )
    return LocalRuntime(
        settings,
        generator=CommandScaffoldGenerator(cfg.scaffold_command),
        wallet_store=FileSystemWalletStore(cfg.resolved_wallets_dir()),
        persist_ports=persist_runtime_ports,
    )


def get_runtime() -> LocalRuntime:
    global _runtime
    if _runtime is None:
        _runtime = build_runtime(config)
    return _runtime


__all__ = [
    "BufferedOutputSink",
    "LocalRuntime",
    "LoggerOutputSink",
    "NullOutputSink",
    "OutputSink",
    "RuntimeSettings",
    "build_runtime",
    "get_runtime",
]
