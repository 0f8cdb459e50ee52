"""Configuration for the Recurrence Service."""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() not in ("false", "0", "no", "off")


@dataclass
class Settings:
    database_url: str = "sqlite:///./recurrence_service.db"
    dapr_enabled: bool = True
    dapr_host: str = "localhost"
    dapr_http_port: int = 3500
    dapr_grpc_port: int = 50001
    pubsub_name: str = "pubsub"
    task_service_app_id: str = "task-service"
    task_service_timeout_seconds: float = 10.0
    enable_scheduler: bool = True
    poll_interval_seconds: float = 60.0
    poll_batch_size: int = 100
    claim_timeout_seconds: int = 300
    log_level: str = "INFO"
    environment: str = "development"
    frontend_url: str = "http://localhost:3000"
    port: int = 3003

    @property
    def dapr_base_url(self) -> str:
        return f"http://{self.dapr_host}:{self.dapr_http_port}"

    @property
    def dapr_grpc_address(self) -> str:
        return f"{self.dapr_host}:{self.dapr_grpc_port}"


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Build Settings from the environment (and a .env file if present)."""
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    return Settings(
        database_url=os.environ.get("DATABASE_URL", Settings.database_url),
        dapr_enabled=_env_bool("DAPR_ENABLED", Settings.dapr_enabled),
        dapr_host=os.environ.get("DAPR_HOST", Settings.dapr_host),
        dapr_http_port=int(os.environ.get("DAPR_HTTP_PORT", Settings.dapr_http_port)),
        dapr_grpc_port=int(os.environ.get("DAPR_GRPC_PORT", Settings.dapr_grpc_port)),
        pubsub_name=os.environ.get("PUBSUB_NAME", Settings.pubsub_name),
        task_service_app_id=os.environ.get("TASK_SERVICE_APP_ID", Settings.task_service_app_id),
        task_service_timeout_seconds=float(
            os.environ.get("TASK_SERVICE_TIMEOUT_SECONDS", Settings.task_service_timeout_seconds)
        ),
        enable_scheduler=_env_bool("ENABLE_SCHEDULER", Settings.enable_scheduler),
        poll_interval_seconds=float(
            os.environ.get("RECURRENCE_POLL_INTERVAL_SECONDS", Settings.poll_interval_seconds)
        ),
        poll_batch_size=int(os.environ.get("RECURRENCE_POLL_BATCH_SIZE", Settings.poll_batch_size)),
        claim_timeout_seconds=int(
            os.environ.get("RECURRENCE_CLAIM_TIMEOUT_SECONDS", Settings.claim_timeout_seconds)
        ),
        log_level=os.environ.get("LOG_LEVEL", Settings.log_level),
        environment=os.environ.get("ENVIRONMENT", Settings.environment),
        frontend_url=os.environ.get("FRONTEND_URL", Settings.frontend_url),
        port=int(os.environ.get("PORT", Settings.port)),
    )
