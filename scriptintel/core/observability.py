"""
Logfire observability configuration for ScriptIntel.

Provides tracing for:
- Intelligence context builds (ranking, evidence, style profile)
- Model calls (via the OpenAI integration)
- Generation diagnostics events

Usage:
    # At app startup (e.g., in the CLI entry point)
    from scriptintel.core.observability import setup_logfire
    setup_logfire()

    # In services
    from scriptintel.core.observability import get_logfire

    with get_logfire().span("scripts.intelligence_context", creator_id=creator_id):
        ...

Environment Variables:
    LOGFIRE_TOKEN: Your Logfire write token (required to ship telemetry)
    LOGFIRE_PROJECT_NAME: Project name in Logfire dashboard
    LOGFIRE_ENVIRONMENT: Environment name (development, staging, production)
"""

import os
import logging
from typing import Optional

import logfire

logger = logging.getLogger(__name__)

_logfire_configured = False


def setup_logfire(
    project_name: Optional[str] = None,
    environment: Optional[str] = None,
    service_name: str = "scriptintel"
) -> bool:
    """
    Configure Logfire for observability.

    Args:
        project_name: Logfire project name (or LOGFIRE_PROJECT_NAME env var)
        environment: Environment name (or LOGFIRE_ENVIRONMENT env var)
        service_name: Service name for tracing

    Returns:
        True if Logfire was configured, False if skipped (no token) or failed
    """
    global _logfire_configured

    if _logfire_configured:
        logger.debug("Logfire already configured")
        return True

    token = os.environ.get("LOGFIRE_TOKEN")
    if not token:
        logger.info("LOGFIRE_TOKEN not set, skipping Logfire configuration")
        return False

    project = project_name or os.environ.get("LOGFIRE_PROJECT_NAME", "scriptintel")
    env = environment or os.environ.get("LOGFIRE_ENVIRONMENT", "development")

    try:
        logfire.configure(
            token=token,
            project_name=project,
            service_name=service_name,
            environment=env,
            send_to_logfire=True,
        )

        # Validation tracing for the pipeline's pydantic models
        logfire.instrument_pydantic()

        # Prompt/response tracing for chat completions
        logfire.instrument_openai()

        _logfire_configured = True
        logger.info(f"Logfire configured: project={project}, environment={env}")
        return True

    except Exception as e:
        logger.error(f"Failed to configure Logfire: {e}")
        return False


def is_logfire_configured() -> bool:
    return _logfire_configured


def get_logfire():
    """
    Get the logfire module.

    Spans and events are no-ops until ``setup_logfire`` has configured a
    token, so callers can use it unconditionally.
    """
    return logfire
