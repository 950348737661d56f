"""Command line toolbox to download, check and sample the source files."""

from __future__ import annotations

import argparse
import datetime
import logging
import os
import re
import sys

from minhareceita.check import CheckError, check, check_checksum, create_checksum
from minhareceita.download import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_PARALLEL,
    DEFAULT_MAX_RETRIES,
    DownloadError,
    download,
    urls,
)
from minhareceita.sample import MAX_LINES, TARGET_DIR, SampleError, sample

DEFAULT_DATA_DIR = "data"
DEFAULT_TIMEOUT = "3m0s"

HELP = """Minha Receita.

Toolbox to manage Minha Receita, including tools to handle extract, transform
and load data, manage the PostgreSQL instance, and to spin up the web server.

See --help for more details.
"""

DOWNLOAD_HELP = """
Downloads the required ZIP and Excel files.

The main files are downloaded from the official website of the Brazilian
Federal Revenue. An extra Excel file is downloaded from IBGE. Since the server
is extremelly slow, all files are downloaded using multiple HTTP requests with
small content ranges."""

URLS_HELP = """
Shows the URLs of the requires ZIP and Excel files.

The main files are downloaded from the official website of the Brazilian
Federal Revenue. An extra Excel file is downloaded from IBGE."""

CHECK_HELP = """
Checks the integrity of the downloaded ZIP files.

The main files downloaded from the official website of the Brazilian
Federal Revenue are ZIP files. This command tries to unarchive them to check
their integrity."""

CHECKSUM_HELP = """
Checksum of the downloaded files.

Even though the official website of the Brazilian Federal Revenue does not offer
a checksum for their files, this command can be used to create or check the checksum
of downloaded files."""

SAMPLE_HELP = """
Creates versions of the source files from the Federal Revenue with a limited
number of lines, allowing us to manually test the process quicker."""

_DURATION_PART = re.compile(r"([0-9]*(?:\.[0-9]*)?)(ns|us|µs|μs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


class CliError(Exception):
    """Raised when a command cannot run with the options it was given."""


def assert_dir_exists(directory) -> None:
    """Raise :class:`CliError` unless ``directory`` is an existing directory."""
    directory = os.fspath(directory)
    if not os.path.exists(directory):
        raise CliError(f"directory {directory} does not exist")
    if not os.path.isdir(directory):
        raise CliError(f"{directory} is not a directory")


def load_database_uri(uri=None) -> str:
    """The database URI given, or the one in the DATABASE_URL variable."""
    if uri:
        return uri
    found = os.environ.get("DATABASE_URL", "")
    if not found:
        raise CliError(
            "could not find a database URI, pass it as a flag or set DATABASE_URL "
            "environment variable with the credentials for a PostgreSQL database"
        )
    return found


def _parse_duration(value: str) -> datetime.timedelta:
    """Parse durations such as ``3m0s``, ``1h30m`` or ``1.5s``."""
    invalid = ValueError(f'time: invalid duration "{value}"')
    text = value
    sign = 1.0
    if text[:1] in ("+", "-"):
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return datetime.timedelta(0)
    if not text:
        raise invalid
    total = 0.0
    position = 0
    while position < len(text):
        match = _DURATION_PART.match(text, position)
        if match is None or match.group(1) in ("", "."):
            raise invalid
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    return datetime.timedelta(seconds=sign * total)


def _add_data_dir(parser: argparse.ArgumentParser, help_text: str) -> None:
    parser.add_argument(
        "-d", "--directory", default=DEFAULT_DATA_DIR, help=help_text
    )


def _run_download(args) -> int:
    assert_dir_exists(args.directory)
    timeout = _parse_duration(args.timeout)
    download(
        args.directory,
        timeout,
        args.skip,
        args.restart,
        args.parallel,
        args.retries,
        args.chunk_size,
    )
    return 0


def _run_urls(args) -> int:
    if args.skip:
        assert_dir_exists(args.directory)
    urls(args.directory, args.skip)
    return 0


def _run_check(args) -> int:
    assert_dir_exists(args.directory)
    check(args.directory, args.delete)
    return 0


def _run_checksum_create(args) -> int:
    assert_dir_exists(args.directory)
    create_checksum(args.directory)
    return 0


def _run_checksum_check(args) -> int:
    assert_dir_exists(args.directory)
    check_checksum(args.src_directory, args.directory)
    return 0


def _run_sample(args) -> int:
    assert_dir_exists(args.directory)
    sample(args.directory, args.target_directory, args.max_lines, args.updated_at)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """The argument parser with every command of the toolbox."""
    raw = argparse.RawDescriptionHelpFormatter
    parser = argparse.ArgumentParser(
        prog="minha-receita", description=HELP, formatter_class=raw
    )
    parser.set_defaults(func=lambda args: _print_help(parser))
    commands = parser.add_subparsers(dest="command", metavar="<command>")

    download_parser = commands.add_parser(
        "download",
        help="Downloads the required ZIP and Excel files",
        description=DOWNLOAD_HELP,
        formatter_class=raw,
    )
    _add_data_dir(download_parser, "directory of the downloaded files")
    download_parser.add_argument(
        "-x", "--skip", action="store_true", help="skip the download of existing files"
    )
    download_parser.add_argument(
        "-t", "--timeout", default=DEFAULT_TIMEOUT, help="timeout for each download"
    )
    download_parser.add_argument(
        "-r",
        "--retries",
        type=int,
        default=DEFAULT_MAX_RETRIES,
        help="maximum retries per download, use -1 for unlimited",
    )
    download_parser.add_argument(
        "-p",
        "--parallel",
        type=int,
        default=DEFAULT_MAX_PARALLEL,
        help="maximum parallel downloads",
    )
    download_parser.add_argument(
        "-c",
        "--chunk-size",
        type=int,
        default=DEFAULT_CHUNK_SIZE,
        help="max length of the bytes range for each HTTP request",
    )
    download_parser.add_argument(
        "-e",
        "--restart",
        action="store_true",
        help="restart all downloads from the beginning",
    )
    download_parser.set_defaults(func=_run_download)

    urls_parser = commands.add_parser(
        "urls",
        help="Shows the URLs for the required ZIP and Excel files",
        description=URLS_HELP,
        formatter_class=raw,
    )
    _add_data_dir(urls_parser, "directory of the downloaded files, used only with --skip")
    urls_parser.add_argument(
        "-x", "--skip", action="store_true", help="skip the download of existing files"
    )
    urls_parser.set_defaults(func=_run_urls)

    check_parser = commands.add_parser(
        "check",
        help="Checks the integrity of downloaded ZIP files",
        description=CHECK_HELP,
        formatter_class=raw,
    )
    _add_data_dir(check_parser, "directory of the downloaded files")
    check_parser.add_argument(
        "-x",
        "--delete",
        action="store_true",
        help="deletes ZIP files that fails the check",
    )
    check_parser.set_defaults(func=_run_check)
    check_commands = check_parser.add_subparsers(dest="check_command", metavar="<command>")

    checksum_parser = check_commands.add_parser(
        "checksum",
        help="Checksum of the downloaded files.",
        description=CHECKSUM_HELP,
        formatter_class=raw,
    )
    checksum_parser.set_defaults(func=lambda args: _print_help(checksum_parser))
    checksum_commands = checksum_parser.add_subparsers(
        dest="checksum_command", metavar="<command>"
    )

    create_parser = checksum_commands.add_parser(
        "create", help="Creates checksum of downloaded files."
    )
    _add_data_dir(create_parser, "directory of the downloaded files")
    create_parser.set_defaults(func=_run_checksum_create)

    compare_parser = checksum_commands.add_parser(
        "check", help="Checks checksum of downloaded files."
    )
    _add_data_dir(compare_parser, "directory of the downloaded files")
    compare_parser.add_argument(
        "-s",
        "--src-directory",
        default=DEFAULT_DATA_DIR,
        help="directory of the checksum file(s) to compare with",
    )
    compare_parser.set_defaults(func=_run_checksum_check)

    sample_parser = commands.add_parser(
        "sample",
        help="Creates sample data of the source files from the Federal Revenue",
        description=SAMPLE_HELP,
        formatter_class=raw,
    )
    _add_data_dir(sample_parser, "directory of the downloaded files")
    sample_parser.add_argument(
        "-m", "--max-lines", type=int, default=MAX_LINES, help="maximum lines per file"
    )
    sample_parser.add_argument(
        "-t",
        "--target-directory",
        default=os.path.join(DEFAULT_DATA_DIR, TARGET_DIR),
        help="directory for the sample CSV files",
    )
    sample_parser.add_argument(
        "-u",
        "--updated-at",
        default="",
        help=(
            "updated at date to be used if the data directory does not have a "
            "updated_at.txt file, format YYYY-MM-DD"
        ),
    )
    sample_parser.set_defaults(func=_run_sample)

    return parser


def _print_help(parser: argparse.ArgumentParser) -> int:
    parser.print_help()
    return 0


def main(argv=None) -> int:
    """Run the toolbox and return the exit status."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except (CliError, CheckError, DownloadError, SampleError, OSError, ValueError) as error:
        print(error, file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())