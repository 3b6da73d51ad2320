"""
Programmatic Alembic migration runner.

Runs migrations without an alembic.ini by pointing the script location at the
migrations directory shipped inside the package. Installed as the
``workflow-store-migrate`` console script.

Usage examples:
    workflow-store-migrate upgrade head
    python -m workflow_store.db.run_migrations downgrade -1
    python -m workflow_store.db.run_migrations current
"""

import sys
from pathlib import Path
from typing import List, Optional

from alembic import command
from alembic.config import Config

from workflow_store.db.config import get_settings


# PUBLIC_INTERFACE
def build_config() -> Config:
    """Alembic config for the packaged migrations and the configured database."""
    cfg = Config()
    cfg.set_main_option("script_location", str(Path(__file__).resolve().parent / "migrations"))
    # Used for offline (--sql) runs; env.py builds its own async engine online.
    cfg.set_main_option("sqlalchemy.url", get_settings().sync_database_url)
    return cfg


# PUBLIC_INTERFACE
def main(argv: Optional[List[str]] = None) -> None:
    """Run an Alembic command with programmatic configuration."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("No Alembic arguments provided. Example: upgrade head")
        sys.exit(1)

    cfg = build_config()
    cmd, other = args[0], args[1:]

    if cmd == "upgrade":
        command.upgrade(cfg, *(other or ["head"]))
    elif cmd == "downgrade":
        command.downgrade(cfg, *(other or ["-1"]))
    elif cmd == "history":
        command.history(cfg)
    elif cmd == "current":
        command.current(cfg)
    elif cmd == "heads":
        command.heads(cfg)
    elif cmd == "show":
        if not other:
            print("Usage: show <revision>")
            sys.exit(2)
        command.show(cfg, other[0])
    else:
        print(f"Unsupported Alembic command: {cmd}")
        sys.exit(2)


if __name__ == "__main__":
    main()
