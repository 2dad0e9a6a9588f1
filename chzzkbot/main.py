"""
Main entry point for the CHZZK command bot.

This module handles application startup, configuration loading,
component initialization, and graceful shutdown procedures.
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

from chzzkbot.config.settings import GlobalConfig, load_global_config, validate_config
from chzzkbot.auth import ChzzkOAuthClient, CredentialRefresher
from chzzkbot.chat import ChzzkOpenApiClient, ChatSession
from chzzkbot.fleet import FleetManager, StaticOwnerSource, TenantSupervisor
from chzzkbot.logging.logger import get_logger
from chzzkbot.processing import CommandRouter
from chzzkbot.store import CommandStore, FirestoreDocumentStore, Owner, create_document_store


class BotApplication:
    """Main application class for the CHZZK command bot."""

    def __init__(self):
        self.config: Optional[GlobalConfig] = None
        self.logger = None  # Will be initialized after config loading
        self._shutdown_event = asyncio.Event()

        # Core components
        self.document_store: Optional[FirestoreDocumentStore] = None
        self.oauth_client: Optional[ChzzkOAuthClient] = None
        self.refresher: Optional[CredentialRefresher] = None
        self.chat_api: Optional[ChzzkOpenApiClient] = None
        self.router: Optional[CommandRouter] = None
        self.fleet: Optional[FleetManager] = None

        # Component initialization tracking
        self._initialized_components = []

    async def startup(self) -> None:
        """Initialize the bot application with proper component initialization order."""
        try:
            # Step 1: Load and validate global configuration
            await self._initialize_configuration()

            # Step 2: Set up structured logging
            await self._initialize_logging()

            # Step 3: Initialize document store
            await self._initialize_document_store()

            # Step 4: Initialize credential refresh
            await self._initialize_authentication()

            # Step 5: Initialize chat API client
            await self._initialize_chat_api()

            # Step 6: Initialize command routing
            await self._initialize_router()

            # Step 7: Start tenants
            await self._start_fleet()

            self.logger.info(
                "Bot application started successfully",
                bot_mode=self.config.bot_mode,
                tenants=len(self.fleet.tenants)
            )

        except Exception as e:
            if self.logger:
                self.logger.error(f"Failed to start bot application: {e}")
            else:
                logging.error(f"Failed to start bot application: {e}")

            # Ensure cleanup on startup failure
            await self._cleanup_on_failure()
            raise

    async def _initialize_configuration(self) -> None:
        """Load and validate global configuration."""
        self.config = load_global_config()
        validate_config(self.config)
        self._initialized_components.append("configuration")

    async def _initialize_logging(self) -> None:
        """Set up structured logging for the whole package."""
        self.logger = get_logger(
            "chzzkbot",
            level=self.config.log_level,
            format_type=self.config.log_format,
            log_file=self.config.log_file
        )

        self.logger.info(
            "Logging system initialized",
            log_level=self.config.log_level,
            log_format=self.config.log_format
        )
        self._initialized_components.append("logging")

    async def _initialize_document_store(self) -> None:
        """Initialize the Firestore document store."""
        self.logger.info("Initializing document store...")

        self.document_store = create_document_store(self.config)

        self.logger.info(
            "Document store initialized",
            project_id=self.config.firebase_project_id,
            owners_collection=self.config.owners_collection,
            commands_collection=self.config.commands_collection
        )
        self._initialized_components.append("document_store")

    async def _initialize_authentication(self) -> None:
        """Initialize the OAuth client and credential refresher."""
        self.logger.info("Initializing credential refresher...")

        self.oauth_client = ChzzkOAuthClient(
            client_id=self.config.chzzk_client_id,
            client_secret=self.config.chzzk_client_secret,
            base_url=self.config.chzzk_api_url,
            timeout=self.config.http_timeout
        )
        self.refresher = CredentialRefresher(self.oauth_client)

        self._initialized_components.append("authentication")

    async def _initialize_chat_api(self) -> None:
        """Initialize the Open API client shared by all chat sessions."""
        self.chat_api = ChzzkOpenApiClient(
            base_url=self.config.chzzk_api_url,
            timeout=self.config.http_timeout
        )
        self._initialized_components.append("chat_api")

    async def _initialize_router(self) -> None:
        self.router = CommandRouter()
        self._initialized_components.append("router")

    def _create_session(self, owner_id: str) -> ChatSession:
        return ChatSession(self.chat_api, owner_id, connect_timeout=self.config.connect_timeout)

    def _create_supervisor(self, owner: Owner) -> TenantSupervisor:
        """Build the supervisor for one owner."""
        # A fixed owner has no store record to re-read
        owner_lookup = None if self.config.is_single_tenant else self.document_store.get_owner

        return TenantSupervisor(
            owner=owner,
            refresher=self.refresher,
            command_store=CommandStore(
                self.document_store,
                owner.owner_id,
                refresh_interval=self.config.command_refresh_interval
            ),
            session_factory=self._create_session,
            router=self.router,
            owner_lookup=owner_lookup,
            reconnect_delay=self.config.reconnect_delay
        )

    async def _start_fleet(self) -> None:
        """Start the fleet manager, or the single configured tenant."""
        if self.config.is_single_tenant:
            owner = Owner(
                owner_id=self.config.owner_id,
                enabled=True,
                refresh_credential=self.config.refresh_token
            )
            source = StaticOwnerSource(owner)
            self.logger.info("Starting in single-tenant mode", owner_id=owner.owner_id)
        else:
            source = self.document_store
            self.logger.info("Starting in multi-tenant mode")

        self.fleet = FleetManager(
            source,
            self._create_supervisor,
            scan_interval=self.config.fleet_scan_interval
        )
        await self.fleet.start()

        self._initialized_components.append("fleet")

    async def shutdown(self) -> None:
        """Gracefully shutdown the bot application."""
        if self.logger:
            self.logger.info("Shutting down bot application...")

        # Step 1: Stop tenants (intentional disconnects, no reconnects)
        await self._shutdown_fleet()

        # Step 2: Close chat API client
        await self._shutdown_chat_api()

        # Step 3: Close OAuth client
        await self._shutdown_authentication()

        # Step 4: Close document store
        await self._shutdown_document_store()

        if self.logger:
            self.logger.info("Bot application shutdown complete")

    async def _shutdown_fleet(self) -> None:
        """Stop every tenant."""
        try:
            if self.fleet:
                await self.fleet.stop()
                if self.logger:
                    self.logger.info("Fleet stopped")
        except Exception as e:
            if self.logger:
                self.logger.error(f"Error stopping fleet: {e}")

    async def _shutdown_chat_api(self) -> None:
        """Shutdown chat API client."""
        try:
            if self.chat_api:
                await self.chat_api.close()
                if self.logger:
                    self.logger.info("Chat API client closed")
        except Exception as e:
            if self.logger:
                self.logger.error(f"Error closing chat API client: {e}")

    async def _shutdown_authentication(self) -> None:
        """Shutdown OAuth client."""
        try:
            if self.oauth_client:
                await self.oauth_client.close()
                if self.logger:
                    self.logger.info("OAuth client closed")
        except Exception as e:
            if self.logger:
                self.logger.error(f"Error closing OAuth client: {e}")

    async def _shutdown_document_store(self) -> None:
        """Shutdown document store connections."""
        try:
            if self.document_store:
                await self.document_store.close()
                if self.logger:
                    self.logger.info("Document store closed")
        except Exception as e:
            if self.logger:
                self.logger.error(f"Error closing document store: {e}")

    async def _cleanup_on_failure(self) -> None:
        """Cleanup resources on startup failure."""
        # Clean up in reverse order of initialization
        for component in reversed(self._initialized_components):
            try:
                if component == "fleet" and self.fleet:
                    await self.fleet.stop()
                elif component == "chat_api" and self.chat_api:
                    await self.chat_api.close()
                elif component == "authentication" and self.oauth_client:
                    await self.oauth_client.close()
                elif component == "document_store" and self.document_store:
                    await self.document_store.close()
                # Other components don't need explicit cleanup
            except Exception as cleanup_error:
                if self.logger:
                    self.logger.error(f"Error cleaning up {component}: {cleanup_error}")

    async def run(self) -> None:
        """Run the main application loop."""
        await self.startup()

        # Wait for shutdown signal
        await self._shutdown_event.wait()

        await self.shutdown()

    def request_shutdown(self, signame: str) -> None:
        """Handle shutdown signals."""
        if self.logger:
            self.logger.info(f"Received {signame}, initiating shutdown...")
        else:
            logging.info(f"Received {signame}, initiating shutdown...")
        self._shutdown_event.set()


async def main() -> None:
    """Main entry point with startup validation."""
    # Set up basic logging for startup
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )

    app = BotApplication()

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, app.request_shutdown, sig.name)

    try:
        await app.run()
    except Exception as e:
        logging.error(f"Application error: {e}")
        sys.exit(1)


def cli() -> None:
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
