"""
FastAPI 应用入口点。
"""

from loguru import logger
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware

from fastapi import FastAPI
from src.server.runtime.router import router as runtime_router
from src.server.runtime.schemas import RuntimeState
from src.server.runtime.services import get_runtime

from src.server.config import config

@asynccontextmanager
async def lifespan(app: FastAPI):
    runtime = get_runtime()
    try:
        state = await runtime.refresh_state()
        logger.info(f"本地运行时当前状态: {state.value}")
        if config.runtime_auto_start and state == RuntimeState.STOPPED and await runtime.is_generated():
            logger.info("runtime_auto_start 已开启，正在启动本地运行时...")
            await runtime.start()
    except Exception as e:
        logger.warning(f"启动时未能确保本地运行时运行：{e}")
    try:
        yield
    finally:
        # 应用关闭时中止日志流，运行时本身保持原状
        logger.info("应用关闭，正在停止日志流...")
        await runtime.log_stream.wait_stopped()

app = FastAPI(title="Local Ledger Runtime Service", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(runtime_router, prefix="/v1")

logger.info(f"config: {config.model_dump_json(indent=4)}")
