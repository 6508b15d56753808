# alembic/env.py
from logging.config import fileConfig
from alembic import context
from sqlalchemy import engine_from_config, pool
import os, sys, pathlib

# project root on the import path when run through the alembic CLI
BASE_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

config = context.config
if getattr(config, "config_file_name", None) and os.path.exists(config.config_file_name):
    fileConfig(config.config_file_name)

from resume_evaluator import create_app
from resume_evaluator.extensions import db

app = create_app()

with app.app_context():
    url = os.getenv("DATABASE_URL") or app.config.get("SQLALCHEMY_DATABASE_URI")

    # relative sqlite paths resolve against the Flask instance folder, as Flask-SQLAlchemy does
    if url and url.startswith("sqlite:///") and not url.startswith("sqlite:////"):
        instance_dir = pathlib.Path(app.instance_path)
        instance_dir.mkdir(parents=True, exist_ok=True)
        rel_path = url.replace("sqlite:///", "", 1)
        url = f"sqlite:///{(instance_dir / rel_path).as_posix()}"

    import resume_evaluator.models  # noqa: F401

    target_metadata = db.metadata

def run_migrations_offline():
    context.configure(url=url, target_metadata=target_metadata,
                      literal_binds=True, compare_type=True, render_as_batch=True)
    with context.begin_transaction():
        context.run_migrations()

def run_migrations_online():
    connectable = engine_from_config({"sqlalchemy.url": url},
                                     prefix="sqlalchemy.", poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata,
                          compare_type=True, render_as_batch=True)
        with context.begin_transaction():
            context.run_migrations()

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
