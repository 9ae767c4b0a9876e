#!/usr/bin/env python3
"""
Update Engine Client CLI

Command line control client for the update engine service.

Examples:
  update_engine_client --update --payload=http://host/payload.bin --follow
  update_engine_client --suspend
  update_engine_client --follow

Commands are mutually exclusive. --suspend, --resume and --cancel are checked
in that order and the first one set runs alone. --follow binds a status
callback before --update applies the payload, and the process then stays
alive until the service reports the final result.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from typing import List, Optional

from client_config import ClientConfig, ConfigError, load_config
from exit_coordinator import ExitCoordinator
from log_config import setup_logging
from update_engine_client import UpdateEngineCallback, UpdateEngineClient
from update_engine_status import (
    EX_FAILURE,
    EX_OK,
    ErrorCode,
    error_code_to_string,
    update_status_to_string,
)

DEFAULT_PAYLOAD_URL = "http://127.0.0.1:8080/payload"

# Ctrl-C, 128 + SIGINT
EX_INTERRUPTED = 130

logger = logging.getLogger(__name__)


class UsageError(Exception):
    """Malformed invocation, reported before any IPC"""
    pass


class ClientArgumentParser(argparse.ArgumentParser):
    def error(self, message: str):
        raise UsageError(message)


@dataclass
class CommandOptions:
    update: bool = False
    suspend: bool = False
    resume: bool = False
    cancel: bool = False
    follow: bool = False
    payload: str = DEFAULT_PAYLOAD_URL
    headers: List[str] = field(default_factory=list)
    socket: Optional[str] = None

    @property
    def has_command(self) -> bool:
        return self.update or self.suspend or self.resume or self.cancel or self.follow


def parse_headers(text: str) -> List[str]:
    """Split the --headers value into one "key:value" entry per line.

    Empty lines are dropped; other lines, whitespace-only ones included, are
    kept verbatim and in order.
    """
    return [line for line in text.split("\n") if line]


def build_parser() -> ClientArgumentParser:
    parser = ClientArgumentParser(
        prog="update_engine_client",
        allow_abbrev=False,
        description="Update Engine Client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --update --payload=http://host/payload.bin --follow
  %(prog)s --suspend
  %(prog)s --follow
        """
    )
    parser.add_argument("--update", action="store_true",
                        help="Start a new update, if no update in progress.")
    parser.add_argument("--payload", default=DEFAULT_PAYLOAD_URL,
                        help="The URI to the update payload to use.")
    parser.add_argument("--headers", default="",
                        help="A list of key-value pairs, one element of the list per line.")
    parser.add_argument("--suspend", action="store_true",
                        help="Suspend an ongoing update and exit.")
    parser.add_argument("--resume", action="store_true",
                        help="Resume a suspended update.")
    parser.add_argument("--cancel", action="store_true",
                        help="Cancel the ongoing update and exit.")
    parser.add_argument("--follow", action="store_true",
                        help="Follow status update changes until a final state is reached. "
                             "Exit status is 0 if the update succeeded, and 1 otherwise.")
    parser.add_argument("--socket", default=None,
                        help="Update engine IPC socket path.")
    return parser


def parse_args(argv: List[str]) -> CommandOptions:
    """Parse the command line into a CommandOptions.

    Raises:
        UsageError: No arguments, an unknown flag or a positional argument
    """
    if not argv:
        raise UsageError("Nothing to do. Run with --help for help.")

    args, extras = build_parser().parse_known_args(argv)
    if extras:
        extra = extras[0]
        if extra.startswith("-") and extra != "-":
            raise UsageError(f"Unknown flag '{extra}'. Run with --help for help.")
        raise UsageError(
            f"Found a positional argument '{extra}'. If you want to pass a value "
            f"to a flag, pass it as --flag=value."
        )

    return CommandOptions(
        update=args.update,
        suspend=args.suspend,
        resume=args.resume,
        cancel=args.cancel,
        follow=args.follow,
        payload=args.payload,
        headers=parse_headers(args.headers),
        socket=args.socket,
    )


class StatusCallback(UpdateEngineCallback):
    """Logs pushed status updates and routes the final result to the coordinator."""

    def __init__(self, coordinator: ExitCoordinator):
        self._coordinator = coordinator

    def on_status_update(self, status_code: int, progress: float) -> None:
        if self._coordinator.decided:
            return
        logger.info(
            f"onStatusUpdate({update_status_to_string(status_code)} ({status_code}), {progress})"
        )

    def on_payload_application_complete(self, error_code: int) -> None:
        if self._coordinator.decided:
            return
        message = f"onPayloadApplicationComplete({error_code_to_string(error_code)} ({error_code}))"
        if error_code == ErrorCode.SUCCESS:
            logger.info(message)
            self._coordinator.request_exit(EX_OK)
        else:
            logger.error(message)
            self._coordinator.request_exit(EX_FAILURE)


async def dispatch(options: CommandOptions, service, coordinator: ExitCoordinator) -> int:
    """Run the selected command against service.

    Returns EX_OK when the process should keep running until the coordinator
    fires, or a non-zero code if the exit could not be scheduled.
    """
    if options.suspend:
        return coordinator.request_exit_for_status(await service.suspend())

    if options.resume:
        return coordinator.request_exit_for_status(await service.resume())

    if options.cancel:
        return coordinator.request_exit_for_status(await service.cancel())

    keep_running = False

    if options.follow:
        status, bound = await service.bind(StatusCallback(coordinator))
        if not status.is_ok() or not bound:
            if status.is_ok():
                logger.error("Failed to bind() the update engine daemon.")
            else:
                logger.error(f"Failed to bind() the update engine daemon: {status}")
            return coordinator.request_exit(EX_FAILURE)
        keep_running = True

    if options.update:
        status = await service.apply_payload(options.payload, options.headers)
        if not status.is_ok():
            return coordinator.request_exit_for_status(status)

    if not keep_running:
        return coordinator.request_exit(EX_OK)

    logger.debug("Waiting for the update engine to report a final state")
    return EX_OK


async def run_client_async(options: CommandOptions, config: ClientConfig, service=None) -> int:
    """Dispatch options and wait for the exit decision on the running loop."""
    coordinator = ExitCoordinator(asyncio.get_running_loop())

    if not options.has_command:
        # Nothing to send, so the service is never contacted
        ret = coordinator.request_exit(EX_OK)
        return ret if ret != EX_OK else await coordinator.wait()

    if service is None:
        service = UpdateEngineClient(
            config.socket_path,
            connect_timeout=config.connect_timeout,
            request_timeout=config.request_timeout,
        )

    try:
        status = await service.connect()
        if status.is_ok():
            ret = await dispatch(options, service, coordinator)
        else:
            logger.error(f"Failed to connect to the update engine service: {status}")
            ret = coordinator.request_exit(status.exit_code)

        if ret != EX_OK:
            return ret
        return await coordinator.wait()
    finally:
        await service.close()


def run_client(argv: List[str], service=None) -> int:
    """Run one client invocation and return the process exit code.

    Args:
        argv: Command line arguments, without the program name
        service: Service handle to use instead of connecting to the socket
    """
    try:
        options = parse_args(argv)
    except UsageError as e:
        logger.error(str(e))
        return EX_FAILURE
    except SystemExit as e:
        # --help
        return e.code if isinstance(e.code, int) else EX_OK

    try:
        config = load_config(options.socket)
    except ConfigError as e:
        logger.error(str(e))
        return EX_FAILURE

    return asyncio.run(run_client_async(options, config, service))


def main() -> None:
    setup_logging()
    try:
        sys.exit(run_client(sys.argv[1:]))
    except KeyboardInterrupt:
        sys.exit(EX_INTERRUPTED)


if __name__ == "__main__":
    main()
