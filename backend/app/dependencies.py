"""FastAPI dependency injection."""

from __future__ import annotations

from app.config import RuntimeConfig, Settings, resolve_runtime_config, settings


def get_settings() -> Settings:
    return settings


_runtime_config: RuntimeConfig | None = None


def get_runtime_config() -> RuntimeConfig:
    """Resolve the runtime config once per process."""
    global _runtime_config
    if _runtime_config is None:
        _runtime_config = resolve_runtime_config(settings)
    return _runtime_config


def build_session(s: Settings, config: RuntimeConfig):
    """Wire client, dispatcher, orchestrator and stores into a RunSession."""
    from functools import partial

    from app.engine.orchestrator import IterationOrchestrator
    from app.engine.session import RunSession
    from app.imaging.compositor import gif_data_uri
    from app.langflow.client import LangflowClient
    from app.notify.alerts import LocalAlertChannel
    from app.notify.dispatcher import NotificationDispatcher
    from app.notify.email import EmailRelayClient
    from app.notify.preferences import PreferenceStore

    refiner = LangflowClient(
        config,
        api_key=s.langflow_api_key,
        upload_timeout_s=s.langflow_upload_timeout_s,
        invoke_timeout_s=s.langflow_invoke_timeout_s,
    )
    alerts = LocalAlertChannel()
    dispatcher = NotificationDispatcher(
        alerts=alerts,
        email=EmailRelayClient(config.email_endpoint, base_url=s.public_base_url, mock=s.mock_email),
        gif_builder=partial(
            gif_data_uri,
            frame_delay_ms=s.frame_delay_ms,
            frame_width=s.frame_width,
            frame_height=s.frame_height,
        ),
    )
    return RunSession(
        config=config,
        orchestrator=IterationOrchestrator(refiner, dispatcher),
        preferences=PreferenceStore(s.data_dir),
        alerts=alerts,
    )


_session = None


def get_session():
    """Get or create the process-wide RunSession singleton."""
    global _session
    if _session is None:
        _session = build_session(settings, get_runtime_config())
    return _session
