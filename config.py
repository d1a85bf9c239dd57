# ============================================================
# pgsheet - PostgreSQL Spreadsheet Client
# config.py — Central Configuration Management
# ============================================================

from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file
BASE_DIR = Path(__file__).parent
load_dotenv(BASE_DIR / ".env")


class PostgresConfig(BaseSettings):
    """PostgreSQL connection configuration for the browsed server."""
    model_config = SettingsConfigDict(env_prefix="PG_", extra="ignore")

    host: str = Field(default="localhost")
    port: int = Field(default=5432)
    user: str = Field(default="postgres")
    password: str = Field(default="")
    database: str = Field(default="postgres")
    admin_database: str = Field(default="postgres")
    sslmode: str = Field(default="prefer")
    connect_timeout: int = Field(default=10)
    statement_timeout_ms: int = Field(default=30000)
    uri: Optional[str] = Field(default=None)

    def get_session_params(self) -> Dict[str, Any]:
        """Per-connection settings that also apply to URI connections."""
        return {
            "connect_timeout": self.connect_timeout,
            "options": f"-c statement_timeout={self.statement_timeout_ms}",
        }

    def get_connection_params(self, database: Optional[str] = None) -> Dict[str, Any]:
        params = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "dbname": database or self.database,
            "sslmode": self.sslmode,
        }
        params.update(self.get_session_params())
        return params


class AppConfig(BaseSettings):
    """Application-level configuration."""
    model_config = SettingsConfigDict(env_prefix="APP_", extra="ignore")

    name: str = Field(default="pgsheet")
    version: str = Field(default="1.0.0")
    log_level: str = Field(default="INFO")
    log_file: str = Field(default="logs/pgsheet.log")
    row_limit: int = Field(default=100)
    status_ttl_seconds: float = Field(default=3.0)
    config_dir: Path = Field(default=Path.home() / ".config" / "pgsheet")


# ── Singleton Config Instances ────────────────────────────────
pg_config = PostgresConfig()
app_config = AppConfig()
