"""
Shared utility functions for routers and services
"""
import json
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def log_endpoint_event(endpoint: str, caller: Optional[str] = None, result: str = "success", details: Optional[dict] = None):
    """Log endpoint execution to app.log"""
    logger.info(f"{endpoint} | caller={caller or 'none'} | {result} | {json.dumps(details or {}, default=str)}")
