"""
文件功能：
    定义本地运行时管理相关的公开数据模型（Pydantic）。

公开接口：
    - RuntimeState: 运行时状态枚举
    - NodeType: 网络节点类型标签
    - PortAssignment: 端口分配
    - NetworkNode: 节点注册表中的节点
    - Gateway: 连接配置（gateways/*.json）
    - Identity: 钱包中的身份记录
    - RuntimeStatus: 运行时状态快照
    - OperationResult: 变更操作的返回结果

内部方法：
    无
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RuntimeState(str, Enum):
    STARTING = "starting"
    STARTED = "started"
    STOPPING = "stopping"
    STOPPED = "stopped"
    RESTARTING = "restarting"


class NodeType(str, Enum):
    PEER = "peer"
    ORDERER = "orderer"
    CERTIFICATE_AUTHORITY = "certificate-authority"
    COUCHDB = "couchdb"
    LOGSPOUT = "logspout"


class PortAssignment(BaseModel):
    """本地运行时的端口分配，创建时确定并持久化。"""

    orderer: int = Field(default=17050, description="排序节点端口")
    peer_request: int = Field(default=17051, description="Peer 请求端口")
    peer_chaincode: int = Field(default=17052, description="Peer 链码端口")
    certificate_authority: int = Field(default=17054, description="CA 端口")
    couch_db: int = Field(default=17055, description="CouchDB 端口")
    logs: int = Field(default=17056, description="日志收集（logspout）端口")


class NetworkNode(BaseModel):
    """节点注册表中的一个节点；type 允许未知标签。"""

    model_config = ConfigDict(extra="allow")

    name: str
    type: str
    api_url: str | None = None
    chaincode_url: str | None = None
    container_name: str | None = None


class Gateway(BaseModel):
    name: str
    path: str
    connection_profile: dict[str, Any]


class Identity(BaseModel):
    """钱包身份记录：cert 与 private_key 为 base64 编码的 PEM。"""

    model_config = ConfigDict(extra="allow")

    name: str
    cert: str
    private_key: str
    msp_id: str


class RuntimeStatus(BaseModel):
    """运行时状态快照。"""

    name: str = Field(description="运行时名称")
    path: str = Field(description="运行时工作目录")
    created: bool = Field(description="工作目录是否存在")
    busy: bool = Field(description="是否有变更操作正在执行")
    state: RuntimeState | None = Field(default=None, description="最近一次观测到的状态")
    ports: PortAssignment = Field(description="当前端口分配")


class OperationResult(BaseModel):
    """变更操作结果：操作结束后的状态与脚本输出。"""

    status: RuntimeStatus
    output: list[str] = Field(default_factory=list, description="脚本输出（按行）")


class KillChaincodeRequest(BaseModel):
    args: list[str] = Field(default_factory=list, description="传递给 kill_chaincode 脚本的参数")
