import logging
import sys
from typing import Optional

import structlog

from scenedepth.core.context import get_run_id

_configured = False


def run_id_processor(logger, method_name, event_dict):
    """Add the active pipeline run_id to the log record if one is set."""
    run_id = get_run_id()
    if run_id and "run_id" not in event_dict:
        event_dict["run_id"] = run_id
    return event_dict


def configure_logging(level: str = "INFO", force: bool = False) -> None:
    """Configure structured JSON logging for the application (once per process)."""
    global _configured
    if _configured and not force:
        return

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            run_id_processor,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Returns a structlog logger, configuring logging on first use.

    Args:
        name: Hierarchical logger name (e.g., 'service.ai', 'stage.depth')
    """
    configure_logging()
    return structlog.get_logger(name)


class LoggerRegistry:
    """
    Logger registry with standardized naming conventions.

    Factory methods keep logger names hierarchical and consistent across the
    service, provider, pipeline and API layers.
    """

    @staticmethod
    def get_api_logger(endpoint: str) -> structlog.stdlib.BoundLogger:
        """Get a logger for API endpoints."""
        return get_logger(f"api.{endpoint}")

    @staticmethod
    def get_service_logger(service_name: str) -> structlog.stdlib.BoundLogger:
        """Get a logger for services."""
        return get_logger(f"service.{service_name}")

    @staticmethod
    def get_provider_logger(provider_id: str) -> structlog.stdlib.BoundLogger:
        """Get a logger for AI providers."""
        return get_logger(f"provider.{provider_id}")

    @staticmethod
    def get_pipeline_logger(component: Optional[str] = None) -> structlog.stdlib.BoundLogger:
        """Get a logger for pipeline execution."""
        if component:
            return get_logger(f"pipeline.{component}")
        return get_logger("pipeline.execution")

    @staticmethod
    def get_stage_logger(stage_name: str) -> structlog.stdlib.BoundLogger:
        """Get a logger for a pipeline stage."""
        return get_logger(f"stage.{stage_name}")

    @staticmethod
    def get_infrastructure_logger(component: str) -> structlog.stdlib.BoundLogger:
        """Get a logger for infrastructure components."""
        return get_logger(f"infrastructure.{component}")
