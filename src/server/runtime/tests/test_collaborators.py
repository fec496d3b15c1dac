"""
默认协作组件测试：脚手架生成命令、节点注册表、端口分配。
"""

import asyncio
import json
import sys

import pytest

from src.server.runtime.errors import ScaffoldError
from src.server.runtime.schemas import NodeType, PortAssignment
from src.server.runtime.services import ports as ports_module
from src.server.runtime.services.node_registry import DirectoryNodeRegistry
from src.server.runtime.services.scaffold import CommandScaffoldGenerator, build_scaffold_args


def test_build_scaffold_args():
    args = build_scaffold_args("/tmp/net", "local_fabric", "fabricvscodelocalfabric", PortAssignment())

    assert args == [
        "--destination=/tmp/net",
        "--name=local_fabric",
        "--dockerName=fabricvscodelocalfabric",
        "--orderer=17050",
        "--peerRequest=17051",
        "--peerChaincode=17052",
        "--certificateAuthority=17054",
        "--couchDB=17055",
        "--logspout=17056",
    ]


@pytest.mark.skipif(sys.platform == "win32", reason="使用 /bin/sh 模拟生成器")
def test_command_generator_runs_in_destination(tmp_path):
    generator_script = tmp_path / "gen.sh"
    generator_script.write_text('for arg in "$@"; do echo "$arg" >> args.txt; done\n', encoding="utf-8")
    destination = tmp_path / "net"
    destination.mkdir()

    generator = CommandScaffoldGenerator(["/bin/sh", str(generator_script)])
    asyncio.run(generator.generate(destination, "local_fabric", "docker", PortAssignment(orderer=19050)))

    recorded = (destination / "args.txt").read_text(encoding="utf-8").splitlines()
    assert "--orderer=19050" in recorded
    assert f"--destination={destination}" in recorded


@pytest.mark.skipif(sys.platform == "win32", reason="使用 /bin/sh 模拟生成器")
def test_command_generator_failure(tmp_path):
    generator = CommandScaffoldGenerator(["/bin/sh", "-c", "echo bad template >&2; exit 1", "gen"])

    with pytest.raises(ScaffoldError) as ei:
        asyncio.run(generator.generate(tmp_path, "local_fabric", "docker", PortAssignment()))
    assert "bad template" in str(ei.value)


def test_command_generator_without_command(tmp_path):
    with pytest.raises(ScaffoldError):
        asyncio.run(CommandScaffoldGenerator([]).generate(tmp_path, "n", "d", PortAssignment()))


def test_command_generator_missing_binary(tmp_path):
    generator = CommandScaffoldGenerator([str(tmp_path / "no-such-generator")])

    with pytest.raises(ScaffoldError):
        asyncio.run(generator.generate(tmp_path, "n", "d", PortAssignment()))


def test_directory_node_registry(tmp_path):
    registry = DirectoryNodeRegistry(tmp_path)
    assert registry.get_nodes() == []

    nodes_dir = tmp_path / "nodes"
    nodes_dir.mkdir()
    (nodes_dir / "peer0.json").write_text(
        json.dumps({
            "name": "peer0.org1.example.com",
            "type": "peer",
            "api_url": "grpc://localhost:17051",
            "chaincode_url": "grpc://localhost:17052",
            "container_name": "fabricvscodelocalfabric_peer0",
            "wallet": "local_fabric_wallet",
        }),
        encoding="utf-8",
    )
    (nodes_dir / "logspout.json").write_text(
        json.dumps({"name": "logspout", "type": "logspout", "api_url": "http://localhost:17056"}),
        encoding="utf-8",
    )
    (nodes_dir / ".peer0.json.swp").write_text("ignored", encoding="utf-8")
    (nodes_dir / "README.md").write_text("ignored", encoding="utf-8")

    nodes = registry.get_nodes()

    assert [n.name for n in nodes] == ["logspout", "peer0.org1.example.com"]
    assert nodes[1].type == NodeType.PEER
    assert nodes[1].wallet == "local_fabric_wallet"


def test_allocate_ports_skips_busy_ports(monkeypatch):
    busy = {17051, 17053}
    monkeypatch.setattr(ports_module, "is_port_free", lambda port, host="127.0.0.1": port not in busy)

    ports = ports_module.allocate_ports()

    assert ports == PortAssignment(
        orderer=17050,
        peer_request=17052,
        peer_chaincode=17054,
        certificate_authority=17055,
        couch_db=17056,
        logs=17057,
    )


def test_allocate_ports_exhausted(monkeypatch):
    monkeypatch.setattr(ports_module, "is_port_free", lambda port, host="127.0.0.1": False)

    with pytest.raises(RuntimeError):
        ports_module.allocate_ports(start=17050, end=17060)
