#!/usr/bin/env python3
"""
Shared scaffolding for catalog CLI scripts: log to stdout and
scripts/log/<name>.log, parse common flags, build the Spotify client from the
environment, and print a banner and a stats summary.

    def main():
        script = ScriptBase(name="my_script", description="...")
        script.add_debug_arg()
        args = script.parse_args()
        client = script.connect()
        ...
        script.print_summary({'albums_synced': count})
        return True

    if __name__ == "__main__":
        run_script(main)
"""

import sys
import argparse
import logging
from pathlib import Path
from typing import Callable, Optional

# Scripts import backend modules (catalog_sync, db_utils, ...) by name
sys.path.insert(0, str(Path(__file__).parent.parent))

RULE = "=" * 80


class ScriptBase:
    """Logging, argument parsing and client setup for one CLI script."""

    def __init__(self, name: str, description: str, epilog: str = "",
                 log_dir: Optional[Path] = None):
        self.name = name
        self.log_dir = Path(log_dir) if log_dir else Path(__file__).parent / 'log'
        self.logger = self._setup_logging()
        self.parser = argparse.ArgumentParser(
            description=description,
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog=epilog
        )

    def _setup_logging(self) -> logging.Logger:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(levelname)s - %(message)s',
            handlers=[
                logging.StreamHandler(sys.stdout),
                logging.FileHandler(self.log_dir / f'{self.name}.log'),
            ]
        )
        return logging.getLogger(self.name)

    def add_debug_arg(self):
        self.parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    def add_limit_arg(self, parser=None, default: int = 100):
        """Add --limit to the main parser or to one subcommand's parser."""
        (parser or self.parser).add_argument(
            '--limit', type=int, default=default,
            help=f'Records per store page (default: {default})'
        )

    def parse_args(self, args=None) -> argparse.Namespace:
        parsed = self.parser.parse_args(args)
        if getattr(parsed, 'debug', False):
            logging.getLogger().setLevel(logging.DEBUG)
        return parsed

    def connect(self):
        """
        Read settings (.env included), configure the record store for
        per-call connections, and return a SpotifyClient.

        Raises:
            ConfigurationError: If a required secret is missing
        """
        from dotenv import load_dotenv
        load_dotenv()

        import db_utils
        from config import load_settings
        from spotify_client import SpotifyClient

        settings = load_settings()
        db_utils.configure(settings.database_url, settings.database_service_key)
        return SpotifyClient.from_settings(settings)

    def print_header(self, modes: dict = None, title: str = None):
        """Banner with the script title and any active modes, e.g. {"DEBUG": True}."""
        self.logger.info(RULE)
        self.logger.info(title or self.name.replace('_', ' ').title())
        self.logger.info(RULE)
        for mode_name, is_active in (modes or {}).items():
            if is_active:
                self.logger.info(f"*** {mode_name} MODE ***")
        self.logger.info("")

    def print_summary(self, stats: dict, title: str = "SUMMARY"):
        self.logger.info("")
        self.logger.info(RULE)
        self.logger.info(title)
        self.logger.info(RULE)

        width = max((len(str(key)) for key in stats), default=0) + 5
        for key, value in stats.items():
            self.logger.info(f"{key.replace('_', ' ').title():<{width}} {value}")
        self.logger.info(RULE)


def run_script(main_func: Callable[[], bool]):
    """Run main_func and exit 0 on success, 1 on failure or Ctrl-C."""
    try:
        success = main_func()
    except KeyboardInterrupt:
        print("\nCancelled by user")
        sys.exit(1)
    except Exception as e:
        logging.error(f"Sync failed: {e}", exc_info=True)
        sys.exit(1)
    sys.exit(0 if success else 1)
