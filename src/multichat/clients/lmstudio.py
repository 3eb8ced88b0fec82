"""
LM Studio client implementation.

LM Studio serves locally loaded models through an OpenAI-compatible API, so
this client reuses the OpenAI streaming implementation without credentials.
"""

import logging
from typing import Any

from .openai import OpenAIClient

logger = logging.getLogger(__name__)

DEFAULT_LMSTUDIO_BASE_URL = "http://localhost:1234"


class LMStudioClient(OpenAIClient):
    """
    LM Studio client implementing the BaseClient interface.

    Provides access to locally running AI models through LM Studio's
    OpenAI-compatible API server.
    """

    def __init__(self, base_url: str = DEFAULT_LMSTUDIO_BASE_URL, **kwargs: Any) -> None:
        kwargs.pop("api_key", None)
        base_url = base_url.rstrip("/")
        if not base_url.endswith("/v1"):
            base_url = f"{base_url}/v1"

        super().__init__(
            api_key=None, base_url=base_url, provider_name="lmstudio", **kwargs
        )

        logger.info(f"Initialized LM Studio client for {self.base_url}")
