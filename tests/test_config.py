from race_oracle.config import load_config

MINIMAL = """
[node]
rpc_url = "http://node-a:8545"

[accounts]
funding = "0xfund"
"""


def test_packaged_config_has_every_section():
    conf = load_config()
    for section in ("node", "timeout", "finality", "gas", "accounts", "scenarios"):
        assert section in conf
    assert conf["finality"]["mode"] in ("poll", "ws")


def test_sink_defaults_to_funding(tmp_path, monkeypatch):
    monkeypatch.delenv("RPC_URL", raising=False)
    monkeypatch.delenv("WS_URL", raising=False)
    path = tmp_path / "c.toml"
    path.write_text(MINIMAL)
    conf = load_config(path)
    assert conf["accounts"]["sink"] == "0xfund"
    assert conf["node"]["rpc_url"] == "http://node-a:8545"
    assert conf["node"]["ws_url"] == "ws://localhost:26657/websocket"


def test_environment_overrides(tmp_path, monkeypatch):
    path = tmp_path / "c.toml"
    path.write_text(MINIMAL)
    monkeypatch.setenv("RACE_ORACLE_CONFIG", str(path))
    monkeypatch.setenv("RPC_URL", "http://node-b:8545")
    monkeypatch.setenv("WS_URL", "ws://node-b:26657/websocket")
    conf = load_config()
    assert conf["node"]["rpc_url"] == "http://node-b:8545"
    assert conf["node"]["ws_url"] == "ws://node-b:26657/websocket"
    assert conf["accounts"]["funding"] == "0xfund"
