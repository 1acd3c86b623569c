from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

ROOT = Path(__file__).resolve().parents[1]

TABLES = {
    "auth_users",
    "profiles",
    "chats",
    "chat_participants",
    "messages",
    "message_read_status",
    "friendships",
    "user_push_tokens",
}


def _config(db_path):
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "alembic"))
    cfg.set_main_option("sqlalchemy.url", f"sqlite+aiosqlite:///{db_path}")
    cfg.attributes["configure_logger"] = False
    return cfg


def test_upgrade_and_downgrade(tmp_path):
    db_path = tmp_path / "migrate.db"
    cfg = _config(db_path)

    command.upgrade(cfg, "head")
    engine = create_engine(f"sqlite:///{db_path}")
    try:
        inspector = inspect(engine)
        assert TABLES <= set(inspector.get_table_names())
        uniques = {tuple(u["column_names"]) for u in inspector.get_unique_constraints("chats")}
        assert ("direct_key",) in uniques
        indexes = {i["name"] for i in inspector.get_indexes("messages")}
        assert "ix_messages_chat_created" in indexes
    finally:
        engine.dispose()

    command.downgrade(cfg, "base")
    engine = create_engine(f"sqlite:///{db_path}")
    try:
        assert not TABLES & set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
