#!/usr/bin/env python3

import argparse
import dataclasses
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Optional

import redis

from cliptrail.clipboard import get_clipboard
from cliptrail.config import AppConfig
from cliptrail.database.kv_store import KeyValueStore, MemoryKeyValueStore
from cliptrail.services.history_service import HistoryService

logger = logging.getLogger(__name__)


class ClipTrailApp:

    def __init__(self, config: AppConfig, max_history: Optional[int] = None,
                 poll_interval: Optional[float] = None, serve_api: bool = False):
        self.config = config
        self.max_history = max_history
        self.poll_interval = poll_interval
        self.serve_api = serve_api
        self.service: Optional[HistoryService] = None
        self.running = False

    def _open_kv(self) -> KeyValueStore:
        if self.config.use_redis:
            try:
                store = self.config.redis.create_store()
                logger.info(f"Redis connected - {self.config.redis.host}:{self.config.redis.port}")
                return store
            except (redis.RedisError, OSError) as e:
                logger.warning(
                    f"Redis unavailable, continuing without persistence: {e}")
        return MemoryKeyValueStore()

    def start(self):
        if self.running:
            return

        self.running = True
        try:
            try:
                clipboard = get_clipboard()
            except NotImplementedError as e:
                logger.warning(f"{e}; clipboard monitoring disabled")
                clipboard = None

            self.service = HistoryService(
                image_dir=self.config.image_dir,
                kv=self._open_kv(),
                clipboard=clipboard,
            )
            if self.max_history is not None:
                self.service.set_capacity(self.max_history)
            if self.poll_interval is not None:
                self.service.update_settings(base_poll_interval=self.poll_interval)
            self.service.start()
            print("ClipTrail running. Press Ctrl+C to stop")
        except Exception as e:
            logger.error(f"Error starting: {e}")
            self.stop()

    def stop(self):
        if not self.running:
            return

        self.running = False
        if self.service:
            self.service.stop()
        print("ClipTrail stopped")

    def run_forever(self):
        self.start()
        if not self.running:
            return

        try:
            if self.serve_api:
                import uvicorn
                from cliptrail.api import create_app

                uvicorn.run(
                    create_app(self.service),
                    host=self.config.api_host,
                    port=self.config.api_port,
                    log_level="warning",
                )
            else:
                while self.running:
                    time.sleep(1.0)
        except KeyboardInterrupt:
            print("\nStopping...")
        finally:
            self.stop()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="ClipTrail - Clipboard history that keeps itself tidy"
    )

    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory for stored images (default: ~/.cliptrail)"
    )

    parser.add_argument(
        "-m", "--max-history",
        type=int,
        default=None,
        help="Number of entries to keep (default: saved setting, 20)"
    )

    parser.add_argument(
        "-i", "--poll-interval",
        type=float,
        default=None,
        help="Base clipboard polling interval in seconds (default: 2.0)"
    )

    parser.add_argument(
        "--api",
        action="store_true",
        help="Serve the local HTTP API"
    )

    parser.add_argument(
        "--api-port",
        type=int,
        default=None,
        help="Port for the local HTTP API (default: 3001)"
    )

    parser.add_argument(
        "--no-redis",
        action="store_true",
        help="Keep history in memory only"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose debug logging"
    )

    return parser.parse_args(argv)


def build_config(args) -> AppConfig:
    config = AppConfig.from_env()
    overrides = {}
    if args.data_dir is not None:
        overrides["data_dir"] = args.data_dir.expanduser()
    if args.no_redis:
        overrides["use_redis"] = False
    if args.api_port is not None:
        overrides["api_port"] = args.api_port
    if overrides:
        config = dataclasses.replace(config, **overrides)
    return config


def main(argv=None):
    args = parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    app = ClipTrailApp(
        build_config(args),
        max_history=args.max_history,
        poll_interval=args.poll_interval,
        serve_api=args.api,
    )

    if not args.api:
        def signal_handler(signum, frame):
            app.stop()
            sys.exit(0)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    try:
        app.run_forever()
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
