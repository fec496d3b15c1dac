"""
配置加载模块：支持 .env、环境变量、工作目录 config.json（或 CONFIG_FILE 指定）多来源合并。
公开接口：
- Config: 读取配置的设置类
- config: Config 的单例实例
- get_config_file_path: 解析 JSON 配置文件路径
- persist_runtime_ports: 将端口分配写回 JSON 配置文件
内部方法：
- Config.settings_customise_sources: 自定义配置来源顺序
- Config.parse_scaffold_command: 将字符串/JSON 解析为 List[str]
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Annotated, Any, Dict, List, Tuple

from loguru import logger
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict, PydanticBaseSettingsSource

from src.server.runtime.schemas import PortAssignment


RUNTIME_PORTS_KEY = "runtime_ports"


def get_config_file_path() -> Path:
    """JSON 配置文件路径：优先 CONFIG_FILE，其次工作目录 config.json。"""
    cfg_path = os.environ.get("CONFIG_FILE")
    return Path(cfg_path) if cfg_path else Path.cwd() / "config.json"


class Config(BaseSettings):
    runtime_name: str = "local_fabric"
    runtime_docker_name: str = "fabricvscodelocalfabric"
    runtime_dir: Path | None = None
    wallets_dir: Path | None = None
    chaincode_timeout: int = 5
    runtime_ports: PortAssignment = PortAssignment()
    # NoDecode: 交由 parse_scaffold_command 解析 JSON 或空白分隔字符串
    scaffold_command: Annotated[List[str], NoDecode] = ["yo", "fabric:network"]
    runtime_auto_start: bool = False

    # pydantic v2 风格配置（等价于旧版的 class Config）
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("scaffold_command", mode="before")
    @classmethod
    def parse_scaffold_command(cls, value: Any) -> List[str]:
        """支持从环境变量以 JSON 或空白分隔解析 scaffold_command。"""
        if value is None or value == "":
            return []
        if isinstance(value, list):
            return [str(v) for v in value]
        if isinstance(value, str):
            text = value.strip()
            # 优先尝试 JSON
            try:
                loaded = json.loads(text)
                if isinstance(loaded, list):
                    return [str(v) for v in loaded]
            except ValueError:
                pass
            return [p for p in re.split(r"\s+", text) if p]
        return value

    def resolved_runtime_dir(self) -> Path:
        """运行时工作目录，未配置时位于工作目录 runtime/<runtime_name>。"""
        if self.runtime_dir is not None:
            return Path(self.runtime_dir)
        return Path.cwd() / "runtime" / self.runtime_name

    def resolved_wallets_dir(self) -> Path:
        """本地钱包存储目录，未配置时位于工作目录 wallets。"""
        if self.wallets_dir is not None:
            return Path(self.wallets_dir)
        return Path.cwd() / "wallets"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """自定义配置来源顺序：入参 > 环境变量 > .env > config.json > secrets。"""

        class JsonFileSettingsSource(PydanticBaseSettingsSource):
            """从工作目录的 config.json（或 CONFIG_FILE 指定路径）加载配置的自定义 Source。"""

            def __init__(self, settings_cls):
                super().__init__(settings_cls)
                self._data: Dict[str, Any] | None = None

            def _load(self) -> None:
                if self._data is not None:
                    return
                self._data = _read_config_file(get_config_file_path())

            def __call__(self) -> Dict[str, Any]:
                self._load()
                return dict(self._data or {})

            def get_field_value(self, field, field_name):  # type: ignore[override]
                """为满足抽象基类要求，按键名/别名返回字段值。"""
                self._load()
                data = self._data or {}
                key_alias = getattr(field, "alias", None) or field_name
                if key_alias in data:
                    return data[key_alias], key_alias, True
                if field_name in data:
                    return data[field_name], field_name, True
                return None, field_name, False

        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonFileSettingsSource(settings_cls),
            file_secret_settings,
        )


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}
    except (OSError, ValueError) as e:
        logger.warning(f"读取配置文件失败，按空配置处理: {path}, {e}")
        return {}


def persist_runtime_ports(ports: Dict[str, int], path: Path | None = None) -> Path:
    """将端口分配写入 JSON 配置文件的 runtime_ports 键，保留其余键。"""
    target = path or get_config_file_path()
    data = _read_config_file(target)
    data[RUNTIME_PORTS_KEY] = dict(ports)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info(f"已保存运行时端口配置: {target}")
    return target


config = Config()
