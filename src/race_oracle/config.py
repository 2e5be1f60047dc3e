import os
import tomllib
from pathlib import Path

pkg_root = Path(__file__).parent
config_file = pkg_root / "config.toml"


def load_config(path: str | Path | None = None) -> dict:
    """Read the TOML config and apply the environment overrides for the node endpoints."""
    path = Path(path or os.getenv("RACE_ORACLE_CONFIG", config_file))
    conf = tomllib.loads(path.read_text())
    node = conf.setdefault("node", {})
    node["rpc_url"] = os.getenv("RPC_URL", node.get("rpc_url", "http://localhost:8545"))
    node["ws_url"] = os.getenv("WS_URL", node.get("ws_url", "ws://localhost:26657/websocket"))
    accounts = conf.setdefault("accounts", {})
    accounts.setdefault("sink", accounts.get("funding"))
    return conf


cfg = load_config()
