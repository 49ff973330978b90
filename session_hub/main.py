"""
Main Application Entry Point for Session Hub

Provides command-line interface and main application startup.
"""

import asyncio
import argparse
import sys
import signal
import logging
from pathlib import Path
from typing import Optional

from .agents.thinker import Thinker
from .api.server import SessionAPI
from .core.persistence import SnapshotStore
from .core.session_state import SessionState
from .discovery.feed import DiscoveryFeed
from .reasoning.backends import select_backend
from .reasoning.memory_recall import MemoryRecallClient
from .utils.config import load_config, setup_logging, SessionHubConfig

logger = logging.getLogger(__name__)

class SessionHubWorkspace:
    """
    Main application class for Session Hub.

    Owns the session state and every component built around it, and runs
    their start/stop lifecycle.
    """

    def __init__(self, config: SessionHubConfig):
        """Initialize the workspace with configuration."""
        self.config = config

        # Initialize core components
        self.state = SessionState(
            store=SnapshotStore(config.get_data_path(config.persistence.state_file)),
            save_delay=config.persistence.save_debounce
        )

        self.backend = select_backend(config.reasoning)
        self.assistant_backend = select_backend(
            config.reasoning, model_override=config.reasoning.assistant_model
        ) if config.reasoning.assistant_model else self.backend

        memory_recall = None
        if config.memory_recall.api_key:
            memory_recall = MemoryRecallClient(
                config.memory_recall.api_key, config.memory_recall.api_url
            )

        self.thinker = Thinker(
            self.state,
            self.backend,
            agent_id=config.thinker.agent_id,
            agent_name=config.thinker.agent_name,
            interval=config.thinker.interval,
            initial_delay=config.thinker.initial_delay,
            enabled=config.thinker.enabled,
            reply_to_messages=config.thinker.reply_to_messages,
            memory_recall=memory_recall
        )

        self.discovery = DiscoveryFeed(
            config.discovery,
            on_agents=self.state.merge_discovered_agents,
            on_gateways_changed=self.state.announce
        )

        self.api = SessionAPI(
            self.state,
            thinker=self.thinker,
            discovery=self.discovery,
            backend=self.assistant_backend,
            assistant_log=config.get_data_path(config.persistence.assistant_log),
            public_url=config.server.public_url
        )

        self._running = False
        self._tasks = []

    async def start(self):
        """Start all components of the Session Hub."""
        logger.info("Starting Session Hub")

        try:
            # Restore state and roster
            self.state.load()
            self.state.add_configured_agents(self.discovery.configured_agents())
            self.state.add_discovered_ids(self.discovery.discover())
            self.state.start()

            # External feeds and the reasoning loop
            await self.discovery.start()
            await self.thinker.start()

            self._tasks.append(asyncio.create_task(self._presence_loop()))

            self._running = True
            logger.info("Session Hub started successfully")

            self._display_startup_info()

        except Exception as e:
            logger.error(f"Failed to start Session Hub: {e}")
            await self.stop()
            raise

    async def stop(self):
        """Stop all components gracefully."""
        logger.info("Stopping Session Hub")

        self._running = False

        await self.thinker.stop()
        await self.discovery.stop()

        # Cancel background tasks
        for task in self._tasks:
            task.cancel()

        # Wait for tasks to complete
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        # Let debounced writes land, then write whatever is still pending
        await self.state.persistence.drain()
        self.state.stop()

        logger.info("Session Hub stopped")

    async def _presence_loop(self):
        """Mark agents offline once their heartbeat timeout passes."""
        interval = self.config.presence.sweep_interval
        while True:
            try:
                await asyncio.sleep(interval)
                self.state.sweep_stale_agents(self.config.presence.heartbeat_timeout)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Presence sweep error: {e}")

    async def serve(self):
        """Run the HTTP server until it exits."""
        import uvicorn
        config = uvicorn.Config(
            self.api.app,
            host=self.config.server.host,
            port=self.config.server.port,
            log_level=self.config.server.log_level.lower()
        )
        server = uvicorn.Server(config)
        await server.serve()

    def _display_startup_info(self):
        """Display startup information to console."""
        status = self.get_status()
        print("\n" + "="*60)
        print("SESSION HUB STARTED")
        print("="*60)
        print(f"Environment: {self.config.environment}")
        print(f"Data Directory: {self.config.data_dir}")
        print(f"API: http://localhost:{self.config.server.port}/api/snapshot")
        print(f"Stream: http://localhost:{self.config.server.port}/api/stream")
        print(f"Log Level: {self.config.server.log_level}")
        print(f"\nReasoning backend: {status['backend'] or 'none'}")
        print(f"Thinker: {'enabled' if status['thinker_enabled'] else 'disabled'}")
        print(f"Agents: {len(self.state.agent_state)}  Topics: {len(self.state.topics)}")
        print("="*60 + "\n")

    def get_status(self):
        """Get current workspace status."""
        return {
            "running": self._running,
            **self.api.get_status()
        }

def create_sample_config():
    """Create a sample configuration file."""
    config = SessionHubConfig()

    # Save to current directory
    config_path = Path("session_hub_config.yaml")

    import yaml
    with open(config_path, 'w') as f:
        yaml.dump(config.model_dump(), f, default_flow_style=False, indent=2)

    print(f"Sample configuration created: {config_path}")
    return config_path

async def run_workspace(config_path: Optional[str] = None,
                        env_file: Optional[str] = None):
    """Run the Session Hub."""

    # Load configuration
    config = load_config(config_path, env_file)
    setup_logging(config)

    # Create workspace
    workspace = SessionHubWorkspace(config)

    await workspace.start()
    server_task = asyncio.create_task(workspace.serve())

    # Setup signal handlers for graceful shutdown
    def signal_handler():
        logger.info("Received shutdown signal")
        server_task.cancel()

    for sig in [signal.SIGINT, signal.SIGTERM]:
        try:
            asyncio.get_running_loop().add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Signal handlers not supported on Windows
            pass

    try:
        await server_task
    except asyncio.CancelledError:
        logger.info("Server stopped")
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
    finally:
        await workspace.stop()

def main():
    """Main entry point with command-line interface."""
    parser = argparse.ArgumentParser(
        description="Session Hub - shared live session for autonomous agents"
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Start command
    start_parser = subparsers.add_parser('start', help='Start the Session Hub')
    start_parser.add_argument('--config', '-c', help='Configuration file path')
    start_parser.add_argument('--env', '-e', help='Environment file path')

    # Config command
    config_parser = subparsers.add_parser('config', help='Configuration management')
    config_parser.add_argument('--create-sample', action='store_true',
                               help='Create sample configuration file')

    # Status command
    status_parser = subparsers.add_parser('status', help='Check a running hub')
    status_parser.add_argument('--url', default='http://127.0.0.1:3101',
                               help='Base URL of the running hub')

    args = parser.parse_args()

    if args.command == 'start':
        try:
            asyncio.run(run_workspace(args.config, args.env))
        except KeyboardInterrupt:
            print("\nShutdown complete.")
        except Exception as e:
            print(f"Failed to start Session Hub: {e}")
            sys.exit(1)

    elif args.command == 'config':
        if args.create_sample:
            create_sample_config()
        else:
            config_parser.print_help()

    elif args.command == 'status':
        import httpx
        try:
            response = httpx.get(f"{args.url.rstrip('/')}/api/status", timeout=10.0)
            response.raise_for_status()
            for key, value in response.json().items():
                print(f"{key}: {value}")
        except httpx.HTTPError as e:
            print(f"Session Hub not reachable at {args.url}: {e}")
            sys.exit(1)

    else:
        parser.print_help()

if __name__ == "__main__":
    main()
