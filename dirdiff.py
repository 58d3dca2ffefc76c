# /// script
# requires-python = ">=3.8"
# dependencies = [
#     "genutility[args]",
#     "rich",
# ]
# ///
import logging
import os
import sys
import unicodedata
from argparse import ArgumentDefaultsHelpFormatter, ArgumentParser, Namespace
from os import fspath
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, NamedTuple, Optional, Sequence, Union

from genutility.args import is_dir, non_negative_int
from genutility.file import StdoutFile
from genutility.filesystem import PathType, scandir_error_log_warning, scandir_rec
from rich.console import Console
from rich.highlighter import NullHighlighter
from rich.logging import RichHandler
from rich.text import Text

logger = logging.getLogger(__name__)

COLUMN_WIDTH = 50
INDENT_WIDTH = 2
SEPARATOR = " | "

ErrorFunc = Callable[[os.DirEntry, Exception], None]


class InvalidRootError(ValueError):
    pass


class Present(NamedTuple):
    """Entry which was read from disk."""

    name: str
    is_dir: bool
    exists: bool = True


class Absent(NamedTuple):
    """Placeholder for an entry which only exists on the other side.
    `is_dir` is copied from the other side and only used for display.
    """

    name: str
    is_dir: bool
    exists: bool = False


Entry = Union[Present, Absent]


class Row(NamedTuple):
    depth: int
    left: Entry
    right: Entry


def sortkey(name: str) -> bytes:
    return os.fsencode(name)


def _listdir(path: str, onerror: ErrorFunc) -> List[Present]:
    def errorfunc(entry: os.DirEntry, e: Exception) -> None:
        # the other side of a one-sided subtree or a file/dir mismatch
        if not isinstance(e, (FileNotFoundError, NotADirectoryError)):
            onerror(entry, e)

    it = scandir_rec(path, files=True, dirs=True, others=True, rec=False, errorfunc=errorfunc)
    entries = [Present(entry.name, entry.is_dir()) for entry in it]
    entries.sort(key=lambda entry: sortkey(entry.name))
    return entries


def compare_dirs(
    left: PathType, right: PathType, depth: int = 0, onerror: ErrorFunc = scandir_error_log_warning
) -> Iterator[Row]:
    """Walks `left` and `right` in lockstep and yields one row per entry name, parents before children.
    Directories which cannot be listed are treated as empty. Failures other than missing paths
    are passed to `onerror(entry, exception)`, which logs a warning by default.
    """

    left = fspath(left)
    right = fspath(right)

    lentries = _listdir(left, onerror)
    rentries = _listdir(right, onerror)

    i = 0
    j = 0
    while i < len(lentries) or j < len(rentries):
        lentry = lentries[i] if i < len(lentries) else None
        rentry = rentries[j] if j < len(rentries) else None

        if lentry is not None and rentry is not None and lentry.name == rentry.name:
            yield Row(depth, lentry, rentry)
            if lentry.is_dir or rentry.is_dir:
                yield from compare_dirs(
                    os.path.join(left, lentry.name), os.path.join(right, rentry.name), depth + 1, onerror
                )
            i += 1
            j += 1
        elif rentry is None or (lentry is not None and sortkey(lentry.name) < sortkey(rentry.name)):
            assert lentry is not None  # for mypy
            yield Row(depth, lentry, Absent(lentry.name, lentry.is_dir))
            if lentry.is_dir:
                yield from compare_dirs(
                    os.path.join(left, lentry.name), os.path.join(right, lentry.name), depth + 1, onerror
                )
            i += 1
        else:
            assert rentry is not None  # for mypy
            yield Row(depth, Absent(rentry.name, rentry.is_dir), rentry)
            if rentry.is_dir:
                yield from compare_dirs(
                    os.path.join(left, rentry.name), os.path.join(right, rentry.name), depth + 1, onerror
                )
            j += 1


def compare(left: PathType, right: PathType, onerror: ErrorFunc = scandir_error_log_warning) -> Iterator[Row]:
    """Checks that both roots are readable directories and returns the lazy comparison of both trees.
    Raises InvalidRootError before anything is compared.
    """

    for path in (left, right):
        if not os.path.isdir(path):
            msg = f"{fspath(path)} is not a directory"
            raise InvalidRootError(msg)
        try:
            with os.scandir(path):
                pass
        except OSError as e:
            msg = f"{fspath(path)} cannot be read: {e.strerror}"
            raise InvalidRootError(msg) from e

    return compare_dirs(left, right, 0, onerror)


def label(entry: Entry) -> str:
    """Display name of `entry`. Undecodable bytes and control characters are replaced."""

    name = os.fsencode(entry.name).decode(sys.getfilesystemencoding(), "replace")
    name = "".join("?" if unicodedata.category(c) == "Cc" else c for c in name)
    if entry.is_dir:
        return name + "/"
    return name


def _style(entry: Entry) -> Optional[str]:
    if entry.exists:
        return None
    return "dim"


def format_row(row: Row, width: int = COLUMN_WIDTH, indent: int = INDENT_WIDTH) -> Text:
    indentation = " " * (row.depth * indent)
    colwidth = max(width - row.depth * indent, 0)

    left = Text(label(row.left), style=_style(row.left) or "")
    left.pad_right(max(colwidth - left.cell_len, 0))

    text = Text(indentation)
    text.append(left)
    text.append(SEPARATOR)
    text.append(indentation)
    text.append(label(row.right), style=_style(row.right))
    return text


def print_rows(rows: Iterable[Row], console: Console, width: int = COLUMN_WIDTH, indent: int = INDENT_WIDTH) -> int:
    num = 0
    for row in rows:
        console.print(format_row(row, width, indent))
        num += 1
    return num


def get_parser() -> ArgumentParser:
    parser = ArgumentParser(
        description="Compare two directory trees and list which files and directories exist on which side",
        formatter_class=ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("path_one", type=is_dir, help="Left directory")
    parser.add_argument("path_two", type=is_dir, help="Right directory")
    parser.add_argument(
        "--width", metavar="N", type=non_negative_int, default=COLUMN_WIDTH, help="Width of the left column"
    )
    parser.add_argument(
        "--indent", metavar="N", type=non_negative_int, default=INDENT_WIDTH, help="Indentation per directory level"
    )
    parser.add_argument("--no-color", action="store_true", help="Don't dim entries which are missing on one side")
    parser.add_argument(
        "-o",
        "--out",
        metavar="PATH",
        type=Path,
        help="Optional output file path. If not given it will be printed to stdout.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Print debug information")
    return parser


def main(args: Namespace) -> int:
    logger.debug("Comparing `%s` with `%s`", args.path_one, args.path_two)

    rows = compare(args.path_one, args.path_two)

    with StdoutFile(args.out, "xt", encoding="utf-8") as fw:
        console = Console(
            file=fw,
            soft_wrap=True,
            markup=False,
            emoji=False,
            highlight=False,
            color_system=None if args.no_color else "auto",
        )
        num = print_rows(rows, console, args.width, args.indent)

    logger.debug("Printed %d rows", num)
    return 0


def cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = get_parser()
    args = parser.parse_args(argv)

    handler = RichHandler(
        console=Console(stderr=True), log_time_format="%Y-%m-%d %H-%M-%S%Z", highlighter=NullHighlighter()
    )
    FORMAT = "%(message)s"

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format=FORMAT, handlers=[handler])
    else:
        logging.basicConfig(level=logging.INFO, format=FORMAT, handlers=[handler])

    try:
        return main(args)
    except (InvalidRootError, FileExistsError) as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted.")
        return 1


if __name__ == "__main__":
    sys.exit(cli())
