"""Base class for async HTTP clients."""

import logging
from typing import Dict

import httpx

from ..application.exceptions import ConfigurationError


class BaseClient:
    """A base client that handles an async client and its identification."""

    def __init__(self, client: httpx.AsyncClient, user_agent: str):
        """
        Initializes the base client.

        Args:
            client: An instance of httpx.AsyncClient.
            user_agent: The User-Agent sent with every request. The site
                        rejects anonymous or generic agents.

        Raises:
            ConfigurationError: If the user agent is missing or appears to
                                be a placeholder.
        """

        if not user_agent or "YOUR_" in user_agent.upper():
            raise ConfigurationError(
                f"User agent for {self.__class__.__name__} is missing "
                f"or is a placeholder. Please check your config files."
            )

        self.client = client
        self.user_agent = user_agent
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def headers(self) -> Dict[str, str]:
        """Headers shared by every request of this client."""
        return {"User-Agent": self.user_agent}
