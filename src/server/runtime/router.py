"""
文件功能：
    本地运行时管理的 FastAPI 路由：状态查询、生命周期操作、连接配置/钱包枚举与日志流控制。

公开接口：
    - GET  /runtime/status -> RuntimeStatus
    - GET  /runtime/running -> bool
    - GET  /runtime/generated -> bool
    - POST /runtime/create -> RuntimeStatus
    - POST /runtime/{generate,start,stop,teardown,restart} -> OperationResult
    - POST /runtime/kill-chaincode -> OperationResult
    - GET  /runtime/gateways -> list[Gateway]
    - GET  /runtime/wallets -> list[str]
    - POST /runtime/wallets/import, DELETE /runtime/wallets -> list[str]
    - GET  /runtime/wallets/{wallet_name}/identities -> list[str]
    - GET  /runtime/nodes -> list[NetworkNode]
    - GET  /runtime/peer-chaincode-url -> str
    - POST /runtime/logs/start, POST /runtime/logs/stop
    - POST /runtime/ports/allocate -> PortAssignment

内部方法：
    - _http_error: 将服务层异常映射为 HTTPException
    - _run_operation: 执行变更操作并收集脚本输出
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from .errors import NodeNotFoundError
from .schemas import Gateway, KillChaincodeRequest, NetworkNode, OperationResult, PortAssignment, RuntimeStatus
from .services import BufferedOutputSink, LocalRuntime, LoggerOutputSink, OutputSink, get_runtime
from .services.ports import allocate_ports


router = APIRouter(prefix="/runtime", tags=["Local Runtime"])


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, NodeNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, RuntimeError):
        return HTTPException(status_code=500, detail=f"运行时操作失败: {str(e)}")
    return HTTPException(status_code=500, detail=f"内部服务器错误: {str(e)}")


async def _run_operation(
    runtime: LocalRuntime, operation: Callable[[OutputSink], Awaitable[None]], name: str
) -> OperationResult:
    sink = BufferedOutputSink(forward=LoggerOutputSink(name))
    try:
        await operation(sink)
    except Exception as e:
        logger.error(f"运行时操作 {name} 失败: {e}")
        raise _http_error(e)
    return OperationResult(status=runtime.get_status(), output=sink.lines)


@router.get("/status", response_model=RuntimeStatus)
async def get_status(refresh: bool = False, runtime: LocalRuntime = Depends(get_runtime)) -> RuntimeStatus:
    """获取运行时状态；refresh=true 时先探测一次存活状态。"""
    if refresh and not runtime.is_busy():
        await runtime.refresh_state()
    return runtime.get_status()


@router.get("/running", response_model=bool)
async def get_running(runtime: LocalRuntime = Depends(get_runtime)) -> bool:
    return await runtime.is_running()


@router.get("/generated", response_model=bool)
async def get_generated(runtime: LocalRuntime = Depends(get_runtime)) -> bool:
    return await runtime.is_generated()


@router.post("/create", response_model=RuntimeStatus)
async def post_create(runtime: LocalRuntime = Depends(get_runtime)) -> RuntimeStatus:
    """重建运行时目录并生成网络配置。"""
    try:
        await runtime.create()
    except Exception as e:
        logger.error(f"创建运行时失败: {e}")
        raise _http_error(e)
    return runtime.get_status()


@router.post("/generate", response_model=OperationResult)
async def post_generate(runtime: LocalRuntime = Depends(get_runtime)) -> OperationResult:
    return await _run_operation(runtime, runtime.generate, "generate")


@router.post("/start", response_model=OperationResult)
async def post_start(runtime: LocalRuntime = Depends(get_runtime)) -> OperationResult:
    return await _run_operation(runtime, runtime.start, "start")


@router.post("/stop", response_model=OperationResult)
async def post_stop(runtime: LocalRuntime = Depends(get_runtime)) -> OperationResult:
    return await _run_operation(runtime, runtime.stop, "stop")


@router.post("/teardown", response_model=OperationResult)
async def post_teardown(runtime: LocalRuntime = Depends(get_runtime)) -> OperationResult:
    return await _run_operation(runtime, runtime.teardown, "teardown")


@router.post("/restart", response_model=OperationResult)
async def post_restart(runtime: LocalRuntime = Depends(get_runtime)) -> OperationResult:
    return await _run_operation(runtime, runtime.restart, "restart")


@router.post("/kill-chaincode", response_model=OperationResult)
async def post_kill_chaincode(
    req: KillChaincodeRequest, runtime: LocalRuntime = Depends(get_runtime)
) -> OperationResult:
    async def kill(sink: OutputSink) -> None:
        await runtime.kill_chaincode(req.args, sink)

    return await _run_operation(runtime, kill, "kill_chaincode")


@router.get("/gateways", response_model=List[Gateway])
async def get_gateways(runtime: LocalRuntime = Depends(get_runtime)) -> List[Gateway]:
    try:
        return await runtime.get_gateways()
    except Exception as e:
        # 连接配置损坏属于需要处理的错误，不按空列表处理
        raise HTTPException(status_code=500, detail=f"读取连接配置失败: {str(e)}")


@router.get("/wallets", response_model=List[str])
async def get_wallets(runtime: LocalRuntime = Depends(get_runtime)) -> List[str]:
    return await runtime.get_wallet_names()


@router.post("/wallets/import", response_model=List[str])
async def post_import_wallets(runtime: LocalRuntime = Depends(get_runtime)) -> List[str]:
    """将运行时目录中的钱包与身份导入本地钱包存储。"""
    try:
        await runtime.import_wallets_and_identities()
        return await runtime.get_wallet_names()
    except Exception as e:
        logger.error(f"导入钱包失败: {e}")
        raise _http_error(e)


@router.delete("/wallets", response_model=List[str])
async def delete_wallets(runtime: LocalRuntime = Depends(get_runtime)) -> List[str]:
    """从本地钱包存储中删除运行时目录对应的钱包。"""
    try:
        await runtime.delete_wallets_and_identities()
        return await runtime.get_wallet_names()
    except Exception as e:
        logger.error(f"删除钱包失败: {e}")
        raise _http_error(e)


@router.get("/wallets/{wallet_name}/identities", response_model=List[str])
async def get_wallet_identities(wallet_name: str, runtime: LocalRuntime = Depends(get_runtime)) -> List[str]:
    """只返回身份名称，不暴露证书与私钥。"""
    try:
        identities = await runtime.get_identities(wallet_name)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"读取钱包身份失败: {str(e)}")
    return [identity.name for identity in identities]


@router.get("/nodes", response_model=List[NetworkNode])
async def get_nodes(runtime: LocalRuntime = Depends(get_runtime)) -> List[NetworkNode]:
    return await runtime.get_nodes()


@router.get("/peer-chaincode-url", response_model=str)
async def get_peer_chaincode_url(runtime: LocalRuntime = Depends(get_runtime)) -> str:
    try:
        return await runtime.get_peer_chaincode_url()
    except Exception as e:
        raise _http_error(e)


@router.post("/logs/start")
async def post_logs_start(runtime: LocalRuntime = Depends(get_runtime)):
    """开始将日志收集节点的日志转发到服务日志。"""
    try:
        await runtime.start_logs(LoggerOutputSink("logs"))
    except Exception as e:
        raise _http_error(e)
    return {"ok": True}


@router.post("/logs/stop")
async def post_logs_stop(runtime: LocalRuntime = Depends(get_runtime)):
    runtime.stop_logs()
    return {"ok": True}


@router.post("/ports/allocate", response_model=PortAssignment)
async def post_allocate_ports(runtime: LocalRuntime = Depends(get_runtime)) -> PortAssignment:
    """重新分配空闲端口并写入配置；需重新 create 后生效。"""
    try:
        runtime.ports = await asyncio.to_thread(allocate_ports)
        await runtime.update_user_settings()
    except Exception as e:
        raise _http_error(e)
    return runtime.ports
