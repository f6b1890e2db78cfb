"""Base class for async HTTP clients."""

import logging
from typing import Optional

import httpx

from ..application.exceptions import ConfigurationError


class BaseClient:
    """A base client that holds an async client, a base URL and a logger."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initializes the base client.

        Args:
            client: An instance of httpx.AsyncClient.
            base_url: The URL (or URL template) this client talks to.
            logger: Logger to report through. Defaults to a logger named
                    after the concrete class.

        Raises:
            ConfigurationError: If the base URL is missing or is not an
                                http(s) URL.
        """

        if not base_url or not base_url.lower().startswith(("http://", "https://")):
            raise ConfigurationError(
                f"Base URL for {self.__class__.__name__} is missing or is not "
                f"an http(s) URL: {base_url!r}. Please check your config files."
            )

        self.client = client
        self.base_url = base_url
        self.logger = logger or logging.getLogger(self.__class__.__name__)
