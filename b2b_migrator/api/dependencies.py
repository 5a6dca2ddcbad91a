"""Shared request dependencies."""

import logging
import os
import threading

from fastapi import Request

from ..models.config import PipelineConfig
from ..orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)

CONFIG_ENV = "B2B_MIGRATOR_CONFIG"

_lock = threading.Lock()


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    """Orchestrator bound to the app, created from ``B2B_MIGRATOR_CONFIG`` on first use."""
    state = request.app.state
    with _lock:
        if getattr(state, "orchestrator", None) is None:
            config_path = os.environ.get(CONFIG_ENV)
            config = PipelineConfig.from_json_file(config_path) if config_path else PipelineConfig()
            logger.info(f"Creating pipeline orchestrator (config: {config_path or 'defaults'})")
            state.orchestrator = PipelineOrchestrator(config)
        return state.orchestrator
