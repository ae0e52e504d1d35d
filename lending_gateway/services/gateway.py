"""Gateway orchestration — introspect, compose, serve."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from aiohttp import web
from graphql import GraphQLSchema, print_schema

from ..config import AppConfig
from ..interfaces.upstream import UpstreamLink as UpstreamLinkProtocol
from ..protocols.compound import DERIVED_FIELDS, EXTENSION_SDL
from ..schema import compose
from ..server import create_app
from ..upstream import UpstreamLink

logger = logging.getLogger(__name__)


class Gateway:
    """Builds the composed schema and runs the web server."""

    def __init__(
        self, config: AppConfig, link: Optional[UpstreamLinkProtocol] = None
    ) -> None:
        self._config = config
        self._link = link or UpstreamLink.from_config(config.upstream)

    async def build_schema(self) -> GraphQLSchema:
        """Introspect upstream and compose the extended schema.

        Failures here are fatal: the server must not start on a partial schema.
        """
        upstream_schema = await self._link.introspect()
        return compose(upstream_schema, EXTENSION_SDL, DERIVED_FIELDS, link=self._link)

    async def print_schema(self) -> str:
        return print_schema(await self.build_schema())

    async def serve(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """Compose the schema, then serve until cancelled."""
        host = host or self._config.server.host
        port = port or self._config.server.port

        logger.info("Create schema")
        schema = await self.build_schema()

        logger.info("Create application")
        app = create_app(schema, self._config)
        runner = web.AppRunner(app)
        await runner.setup()

        try:
            site = web.TCPSite(runner, host, port)
            await site.start()
            logger.info("Listening on %s:%d%s", host, port, self._config.server.path)
            await asyncio.Event().wait()
        finally:
            logger.info("Shutting down")
            await runner.cleanup()
