"""
Command line entry point.

Usage:
    python main.py batch [--source PATH_OR_URL] [--output DIR]
    python main.py prerecorded [--url URL] [--language CODE]

Settings come from the environment (and .env.local); flags override them.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from call_analytics.config import DEFAULT_ENV_FILE, Config, load_config
from call_analytics.exceptions import CallAnalyticsError, ConfigurationError
from call_analytics.server.common.batch_client import construct_batch_job_client
from call_analytics.server.common.prerecorded_client import PrerecordedClient
from call_analytics.services.orchestrator import (
    BatchWorkflow,
    ExitCode,
    describe_failure,
    exit_code_for,
    run_prerecorded,
)

logger = logging.getLogger("call_analytics")

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(log_file: str | None = None, verbose: bool = False) -> None:
    """
    Configure Python's built-in logging for the process.

    Progress lines go to stderr so stdout stays free for command output.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="call-analytics", description="Speech analytics job client."
    )
    parser.add_argument("--env-file", default=DEFAULT_ENV_FILE, help="dotenv file to load.")
    parser.add_argument("--log-file", help="Also write log lines to this file.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    batch = subparsers.add_parser("batch", help="Run an audio file through a batch analytics job.")
    batch.add_argument("--source", help="Audio URL or local path (overrides AUDIO_SOURCE).")
    batch.add_argument("--output", help="Destination directory (overrides DESTINATION_DIR).")
    batch.add_argument("--interval", type=float, help="Seconds between status checks.")
    batch.add_argument("--max-attempts", type=int, help="Maximum number of status checks.")
    batch.add_argument("--questions", help="JSON file with the analytic questions.")

    prerecorded = subparsers.add_parser(
        "prerecorded", help="Transcribe a hosted recording in a single request."
    )
    prerecorded.add_argument("--url", help="Audio URL (overrides AUDIO_URL).")
    prerecorded.add_argument("--language", help="Language code to force (default: hi).")

    return parser


# -------------------------------------------------------------- #
# Commands
# -------------------------------------------------------------- #


async def run_batch_command(config: Config) -> int:
    """Run the batch workflow and return the process exit status."""
    errors = config.validate(require=("api_key",))
    if errors:
        for error in errors:
            logger.error(error)
        return ExitCode.CONFIGURATION

    workflow = BatchWorkflow(config, construct_batch_job_client(config))
    try:
        result = await workflow.run()
    except CallAnalyticsError as e:
        logger.error(describe_failure(e))
        return exit_code_for(e)

    print(f"Results saved to: {config.destination_dir}")
    for path in result.files:
        print(f"  {path}")
    return ExitCode.OK


async def run_prerecorded_command(config: Config, language: str | None = None) -> int:
    """Transcribe config.audio_url and print the normalized transcript as JSON."""
    errors = config.validate(require=("deepgram_api_key", "audio_url"))
    if errors:
        for error in errors:
            logger.error(error)
        return ExitCode.CONFIGURATION

    client = PrerecordedClient(config.deepgram_api_key)
    options = {"language": language} if language else None
    try:
        result = await run_prerecorded(client, config.audio_url, options)
    except CallAnalyticsError as e:
        logger.error(describe_failure(e))
        return exit_code_for(e)

    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return ExitCode.OK


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_file, args.verbose)

    try:
        if args.command == "batch":
            config = load_config(
                args.env_file,
                questions_file=args.questions,
                audio_source=args.source,
                destination_dir=args.output,
                poll_interval_s=args.interval,
                max_poll_attempts=args.max_attempts,
            )
            return int(asyncio.run(run_batch_command(config)))

        config = load_config(args.env_file, audio_url=args.url)
        return int(asyncio.run(run_prerecorded_command(config, args.language)))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return ExitCode.CONFIGURATION
    except Exception as e:
        logger.exception(f"Unexpected error during processing: {e}")
        return ExitCode.ERROR
