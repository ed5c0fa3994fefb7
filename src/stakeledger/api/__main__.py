# src/stakeledger/api/__main__.py
from __future__ import annotations

import uvicorn

from stakeledger.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so STAKELEDGER_* vars exist before anything reads them.
    load_dotenv_if_present()

    from stakeledger.runtime.config import apply_node_config_to_env, load_node_config

    cfg = load_node_config()
    apply_node_config_to_env(cfg)

    # Import after env is populated (create_app reads STAKELEDGER_MODE)
    from stakeledger.api.app import create_app

    uvicorn.run(create_app(), host=cfg.api_host, port=int(cfg.api_port), log_level=cfg.log_level.lower())


if __name__ == "__main__":
    main()
