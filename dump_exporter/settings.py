"""
Initializes the Dynaconf settings object for the dump_exporter component.
This module is the single source of truth for all configuration.

Values come from config/settings.toml and can be overridden with
EXPORTER_-prefixed environment variables, using '__' for nesting
(e.g. EXPORTER_DUMPS__CACHE_DIR=/var/cache/dumps).
"""

from pathlib import Path
from dynaconf import Dynaconf

PROJECT_ROOT = Path(__file__).parent.parent

settings = Dynaconf(
    root_path=PROJECT_ROOT,
    settings_files=["config/settings.toml"],
    secrets=["config/.secrets.toml"],
    envvar_prefix="EXPORTER",
    merge_enabled=True,
    environments=False,
    load_dotenv=False,
)
