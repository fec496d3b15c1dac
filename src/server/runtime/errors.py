"""
本地运行时管理的异常定义。
"""

from __future__ import annotations


class RuntimeControllerError(RuntimeError):
    """运行时控制器异常基类。"""


class ScriptExecutionError(RuntimeControllerError):
    """生命周期脚本执行失败（非零退出码或无法启动）。"""

    def __init__(self, script: str, returncode: int | None = None, reason: str | None = None) -> None:
        self.script = script
        self.returncode = returncode
        self.reason = reason
        if reason:
            message = f"脚本 {script} 无法执行: {reason}"
        else:
            message = f"脚本 {script} 执行失败，退出码 {returncode}"
        super().__init__(message)


class NodeNotFoundError(RuntimeControllerError, LookupError):
    """节点注册表中不存在所需类型的节点。"""


class ScaffoldError(RuntimeControllerError):
    """网络配置脚手架生成失败。"""
