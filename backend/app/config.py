"""Application configuration from environment variables."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings

NETLIFY_EMAIL_PATH = "/.netlify/functions/send-email"
VERCEL_EMAIL_PATH = "/api/send-email"

MAX_ITERATION_COUNT = 20


class Settings(BaseSettings):
    exactish_env: str = "development"
    exactish_log_level: str = "info"

    # CORS
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Langflow workflow host
    langflow_api_base_url: str = ""
    langflow_flow_id: str = ""
    langflow_image_component_key: str = "ImageFile-GJs3c"
    langflow_api_key: str = ""
    langflow_upload_timeout_s: float = 60.0
    langflow_invoke_timeout_s: float = 180.0

    # Email endpoint selection
    platform: Literal["netlify", "vercel"] | None = None
    netlify_email_function_url: str = ""
    vercel_email_api_url: str = ""
    public_base_url: str = "http://localhost:8000"
    mock_email: bool = False

    # Iteration control
    default_iteration_count: int = 5
    show_iteration_control: bool = True

    # SendGrid relay
    sendgrid_api_key: str = ""
    sendgrid_from_email: str = ""
    sendgrid_reply_email: str = ""
    sendgrid_enable_marketing: bool = False
    sendgrid_marketing_list_id: str = ""

    # Animation
    frame_width: int = 512
    frame_height: int = 512
    frame_delay_ms: int = 1000

    # Local persistence (notification email)
    data_dir: Path = Path(__file__).parent / "data"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@dataclass(frozen=True)
class RuntimeConfig:
    """Resolved once at startup and passed down to the run session."""

    workflow_base_url: str
    flow_id: str
    image_component_key: str
    email_endpoint: str
    default_iteration_count: int
    show_iteration_control: bool
    platform: str = "netlify"


def resolve_platform(s: Settings) -> str:
    if s.platform:
        return s.platform
    if "vercel.app" in s.public_base_url:
        return "vercel"
    return "netlify"


def resolve_email_endpoint(s: Settings) -> str:
    if resolve_platform(s) == "vercel":
        return s.vercel_email_api_url or VERCEL_EMAIL_PATH
    return s.netlify_email_function_url or NETLIFY_EMAIL_PATH


def resolve_runtime_config(s: Settings) -> RuntimeConfig:
    count = min(max(s.default_iteration_count, 1), MAX_ITERATION_COUNT)
    return RuntimeConfig(
        workflow_base_url=s.langflow_api_base_url.rstrip("/"),
        flow_id=s.langflow_flow_id,
        image_component_key=s.langflow_image_component_key,
        email_endpoint=resolve_email_endpoint(s),
        default_iteration_count=count,
        show_iteration_control=s.show_iteration_control,
        platform=resolve_platform(s),
    )


settings = Settings()
