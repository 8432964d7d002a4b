"""Main entry point for the Redis metric store API."""
import argparse
import logging
import sys

from promstore.config import Config, load_config
from promstore.control_api import ControlAPI
from promstore.errors import StorageUnavailable
from promstore.storage import RedisStorage


def setup_logging(log_level: str, log_format: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    if log_format == "json":
        fmt = '{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'
    else:
        fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    logging.basicConfig(
        level=level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Reduce noise from some libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main():
    """Main function."""
    parser = argparse.ArgumentParser(
        description="Redis metric store - aggregate and expose Prometheus metrics"
    )
    parser.add_argument(
        "--config",
        "-c",
        help="Path to configuration YAML file (defaults are used when omitted)"
    )
    parser.add_argument(
        "--wipe",
        action="store_true",
        help="Delete every stored metric under the configured prefix and exit"
    )

    args = parser.parse_args()

    # Load configuration
    try:
        config = load_config(args.config) if args.config else Config()
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config.global_.log_level, config.global_.log_format)
    logger = logging.getLogger(__name__)

    storage = RedisStorage(config.storage)
    logger.info(f"Metric key prefix: {config.storage.prefix}")

    if args.wipe:
        try:
            deleted = storage.wipe_all()
        except StorageUnavailable as e:
            logger.error(f"Wipe failed: {e}")
            sys.exit(1)
        logger.info(f"Deleted {deleted} keys")
        return

    control_api = ControlAPI(storage)

    logger.info(f"Starting API on {config.server.bind_address}:{config.server.port}")
    try:
        control_api.run(
            host=config.server.bind_address,
            port=config.server.port
        )
    except Exception as e:
        logger.error(f"Control API error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
