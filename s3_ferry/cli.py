"""
Command-line interface for s3-ferry.
"""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .backend import S3Backend
from .cancellation import CancellationToken, cancel_on_interrupt
from .commands import Commands
from .errors import ArgumentError, FerryError
from .key_glob import GlobMode
from .models import (
    CommandResult,
    ListOptions,
    MakeBucketOptions,
    TransferOptions,
    UploadOptions,
)

logger = logging.getLogger(__name__)

QUIET_LOGGERS = ('botocore', 'boto3', 'urllib3', 's3transfer')


class ArgumentParser(argparse.ArgumentParser):
    """argparse parser that reports usage errors with the argument exit code."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(int(CommandResult.ERROR_ARGUMENTS), f"{self.prog}: error: {message}\n")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application.

    Args:
        verbose: Whether to enable debug logging
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    if not verbose:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def load_config(config_file: Optional[Path] = None) -> dict:
    """Load configuration from a JSON file.

    Args:
        config_file: Path to config file

    Returns:
        Dictionary of configuration values
    """
    if not config_file:
        return {}

    try:
        with open(config_file) as f:
            config = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Error loading config file: {e}")
        return {}
    if not isinstance(config, dict):
        logger.error(f"Error loading config file: {config_file} does not contain an object")
        return {}
    return config


def concurrency_type(value: str) -> int:
    try:
        count = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid concurrency: {value!r}") from None
    if count < 1:
        raise argparse.ArgumentTypeError(f"concurrency must be at least 1, got {count}")
    return count


def _setting(args: argparse.Namespace, config: dict, name: str, default=None):
    value = getattr(args, name, None)
    if value is not None:
        return value
    return config.get(name, default)


def create_backend(args: argparse.Namespace, config: dict) -> S3Backend:
    """Create the storage backend.

    Args:
        args: Command line arguments
        config: Values from the config file

    Returns:
        Configured S3Backend instance
    """
    return S3Backend(
        region=_setting(args, config, 'region'),
        endpoint_url=_setting(args, config, 'endpoint'),
        profile=_setting(args, config, 'profile'),
    )


def transfer_options(args: argparse.Namespace, config: dict) -> TransferOptions:
    """Build TransferOptions from the command line and config file.

    Raises:
        ArgumentError: If the configured concurrency is not a positive integer
    """
    concurrency = _setting(args, config, 'concurrency', 1)
    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        raise ArgumentError(f"concurrency must be a positive integer, got {concurrency!r}")
    return TransferOptions(
        concurrency=concurrency,
        continue_on_error=bool(args.continue_on_error or config.get('continue_on_error', False)),
        recursive=args.recursive,
    )


def upload_options(args: argparse.Namespace, config: dict) -> UploadOptions:
    return UploadOptions(
        acl=_setting(args, config, 'acl'),
        grant_full_control=args.grant_full_control,
        grant_read=args.grant_read,
        grant_read_acp=args.grant_read_acp,
        grant_write_acp=args.grant_write_acp,
        storage_class=_setting(args, config, 'storage_class'),
    )


def handle_upload(args: argparse.Namespace, commands: Commands, config: dict) -> CommandResult:
    return commands.upload(args.paths, args.destination,
                           transfer_options(args, config), upload_options(args, config))


def handle_download(args: argparse.Namespace, commands: Commands, config: dict) -> CommandResult:
    return commands.download(args.uris, args.destination, transfer_options(args, config))


def handle_cp(args: argparse.Namespace, commands: Commands, config: dict) -> CommandResult:
    return commands.cp(args.arguments, transfer_options(args, config), upload_options(args, config))


def handle_rm(args: argparse.Namespace, commands: Commands, config: dict) -> CommandResult:
    return commands.rm(args.uris)


def handle_ls(args: argparse.Namespace, commands: Commands, config: dict) -> CommandResult:
    """Handle the ls command.

    Args:
        args: Command line arguments
        commands: Command runner
        config: Values from the config file
    """
    glob = args.glob or config.get('glob', GlobMode.AUTO.value)
    try:
        glob_mode = GlobMode(glob)
    except ValueError:
        raise ArgumentError(f"invalid glob mode in config: {glob!r}") from None
    options = ListOptions(
        recursive=args.recursive,
        directory=args.directory,
        substring=args.substring,
        full_path=args.full_path,
        long=args.long,
        only_files=args.only_files,
        only_directories=args.only_directories,
        glob=glob_mode,
    )
    return commands.ls(args.uris, options)


def handle_ls_buckets(args: argparse.Namespace, commands: Commands, config: dict) -> CommandResult:
    return commands.ls_buckets()


def handle_cat(args: argparse.Namespace, commands: Commands, config: dict) -> CommandResult:
    return commands.cat(args.uris)


def handle_mb(args: argparse.Namespace, commands: Commands, config: dict) -> CommandResult:
    options = MakeBucketOptions(
        acl=_setting(args, config, 'acl'),
        grant_full_control=args.grant_full_control,
        grant_read=args.grant_read,
        grant_read_acp=args.grant_read_acp,
        grant_write=args.grant_write,
        grant_write_acp=args.grant_write_acp,
    )
    continue_on_error = bool(args.continue_on_error or config.get('continue_on_error', False))
    return commands.mb(args.uris, options, continue_on_error, commands.backend.region)


def _add_transfer_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('-j', '--concurrency', type=concurrency_type,
                        help="Number of transfers to run at once (default 1)")
    parser.add_argument('-y', '--continue-on-error', action='store_true',
                        help="Keep going after a failed transfer")
    parser.add_argument('-r', '--recursive', action='store_true',
                        help="Transfer directories recursively")


def _add_grant_flags(parser: argparse.ArgumentParser, grant_write: bool = False) -> None:
    parser.add_argument('--acl', type=str, help="Canned ACL to apply")
    parser.add_argument('--grant-full-control', type=str,
                        help="Grantee gets READ, READ_ACP and WRITE_ACP")
    parser.add_argument('--grant-read', type=str, help="Grantee may read")
    parser.add_argument('--grant-read-acp', type=str, help="Grantee may read the ACL")
    if grant_write:
        parser.add_argument('--grant-write', type=str, help="Grantee may write")
    parser.add_argument('--grant-write-acp', type=str, help="Grantee may write the ACL")


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(prog='s3-ferry', description="Move files between disk and S3")
    parser.add_argument('-v', '--verbose', action='store_true',
                        help="Enable verbose logging")
    parser.add_argument('-c', '--config', type=Path,
                        help="Path to config file")
    parser.add_argument('-R', '--region', type=str,
                        help="Region to use (default eu-west-1)")
    parser.add_argument('-e', '--endpoint', type=str,
                        help="Custom endpoint URL for other S3 implementations")
    parser.add_argument('--profile', type=str,
                        help="AWS config profile")

    subparsers = parser.add_subparsers(dest='command', required=True)

    upload_parser = subparsers.add_parser('upload', aliases=['up'],
                                          help="Upload files or directories")
    upload_parser.add_argument('paths', nargs='+', help="Local files or directories")
    upload_parser.add_argument('destination', help="s3:// destination")
    _add_transfer_flags(upload_parser)
    _add_grant_flags(upload_parser)
    upload_parser.add_argument('--storage-class', type=str, help="Storage class of new objects")
    upload_parser.set_defaults(handler=handle_upload)

    download_parser = subparsers.add_parser('download', aliases=['down'],
                                            help="Download objects or prefixes")
    download_parser.add_argument('uris', nargs='+', help="s3:// addresses")
    download_parser.add_argument('destination', help="Local file or directory")
    _add_transfer_flags(download_parser)
    download_parser.set_defaults(handler=handle_download)

    cp_parser = subparsers.add_parser('cp', help="Copy to or from S3")
    cp_parser.add_argument('arguments', nargs='+', metavar='path',
                           help="Sources followed by the destination")
    _add_transfer_flags(cp_parser)
    _add_grant_flags(cp_parser)
    cp_parser.add_argument('--storage-class', type=str, help="Storage class of new objects")
    cp_parser.set_defaults(handler=handle_cp)

    rm_parser = subparsers.add_parser('rm', help="Delete objects")
    rm_parser.add_argument('uris', nargs='+', help="s3:// addresses")
    rm_parser.set_defaults(handler=handle_rm)

    ls_parser = subparsers.add_parser('ls', help="List objects")
    ls_parser.add_argument('uris', nargs='+', help="s3:// addresses, optionally globs")
    ls_parser.add_argument('-f', '--full-path', action='store_true',
                           help="Print s3:// addresses instead of relative names")
    ls_parser.add_argument('-l', '--long', action='store_true',
                           help="Print size, modification time and storage class")
    ls_parser.add_argument('-d', '--directory', action='store_true',
                           help="List directories themselves, not their contents")
    ls_parser.add_argument('-s', '--substring', action='store_true',
                           help="Match every key starting with the given key")
    ls_parser.add_argument('-r', '--recursive', action='store_true',
                           help="List subdirectories recursively")
    ls_parser.add_argument('--only-files', action='store_true', help="Print only files")
    ls_parser.add_argument('--only-directories', action='store_true',
                           help="Print only directories")
    ls_parser.add_argument('-G', '--glob', choices=[m.value for m in GlobMode],
                           help="Interpret keys as glob patterns (default auto)")
    ls_parser.set_defaults(handler=handle_ls)

    lb_parser = subparsers.add_parser('ls-buckets', aliases=['lb'], help="List buckets")
    lb_parser.set_defaults(handler=handle_ls_buckets)

    cat_parser = subparsers.add_parser('cat', help="Write objects to standard output")
    cat_parser.add_argument('uris', nargs='+', help="s3:// addresses")
    cat_parser.set_defaults(handler=handle_cat)

    mb_parser = subparsers.add_parser('mb', help="Create buckets")
    mb_parser.add_argument('uris', nargs='+', help="Bucket addresses, e.g. s3://name/")
    mb_parser.add_argument('-y', '--continue-on-error', action='store_true',
                           help="Keep going after a failed bucket creation")
    _add_grant_flags(mb_parser, grant_write=True)
    mb_parser.set_defaults(handler=handle_mb)

    return parser


def run(argv: Optional[List[str]] = None, backend=None,
        cancellation: Optional[CancellationToken] = None) -> CommandResult:
    """Parse arguments and run one command.

    Args:
        argv: Arguments without the program name, sys.argv by default
        backend: Storage backend, built from the arguments if not given
        cancellation: Token to cancel the command with

    Returns:
        CommandResult of the command
    """
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    config = load_config(args.config)
    token = cancellation or CancellationToken()

    try:
        if backend is None:
            backend = create_backend(args, config)
        commands = Commands(backend, token)
        with cancel_on_interrupt(token):
            result = args.handler(args, commands, config)
    except ArgumentError as e:
        logger.error(f"Error: {e}")
        return CommandResult.ERROR_ARGUMENTS
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return CommandResult.CANCELLED
    except FerryError as e:
        logger.error(f"Error: {e}")
        return CommandResult.ERROR_SOME_OPERATIONS_FAILED
    except Exception as e:
        logger.error(f"Error: {e}")
        return CommandResult.ERROR_SOME_OPERATIONS_FAILED

    if token.is_cancelled():
        return CommandResult.CANCELLED
    return result


def main() -> None:
    """Main entry point for the CLI."""
    sys.exit(int(run()))


if __name__ == '__main__':
    main()
