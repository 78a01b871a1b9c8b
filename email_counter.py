"""Email Address Counter.

This script scans a single file or a whole directory tree for substrings that
look like email addresses. Every hit is lower-cased and tallied, and the totals
are written to a CSV report (``EmailAddress,Count``) sorted by ascending count.

Each run produces one report named after the UTC time it started, e.g.
``20240115093000_EmailCounter_Output.csv``, inside the directory given with
``--csv``. Bytes that do not decode are replaced, so binary files are scanned
too. Files that cannot be opened or read are reported and skipped; the rest of
the run carries on.
"""

from __future__ import annotations

import argparse
import codecs
import logging
from logging.handlers import RotatingFileHandler
import re
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import pandas as pd
from tqdm import tqdm


__version__ = "0.1.0"

LOGGER = logging.getLogger("email_counter")

# ---------------------------------------------------------------------------
# Defaults (can be overridden via CLI arguments)
# ---------------------------------------------------------------------------
DEFAULT_ENCODING = "utf-8"
DEFAULT_DECODE_ERRORS = "replace"
STRICT_DECODE_ERRORS = "strict"
OUTPUT_NAME_SUFFIX = "_EmailCounter_Output.csv"
OUTPUT_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
REPORT_COLUMNS = ["EmailAddress", "Count"]

# UTF-32 marks must be checked before UTF-16, whose LE mark is their prefix.
BOM_ENCODINGS = (
    (codecs.BOM_UTF32_LE, "utf-32"),
    (codecs.BOM_UTF32_BE, "utf-32"),
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

# Summary lines are meant to show through any verbosity setting.
SUMMARY = logging.CRITICAL

BANNER = f"EmailCounter version {__version__}"


class ConfigurationError(ValueError):
    """Raised when the input selection is missing, ambiguous or does not exist."""


# ---------------------------------------------------------------------------
# Utility data classes
# ---------------------------------------------------------------------------
@dataclass
class ScanResult:
    path: Path
    lines_read: int = 0
    matches: int = 0
    new_addresses: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class RunSummary:
    unique_emails: int
    files_processed: int
    files_failed: int
    output_path: Path


# ---------------------------------------------------------------------------
# Pattern matching
# ---------------------------------------------------------------------------
EMAIL_PATTERN = re.compile(r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", re.IGNORECASE)


def iter_email_matches(line: str) -> Iterator[str]:
    """Yield every email-like token in ``line``, left to right, without overlap."""
    for match in EMAIL_PATTERN.finditer(line):
        yield match.group(0)


# ---------------------------------------------------------------------------
# Tally store
# ---------------------------------------------------------------------------
def normalize_address(address: str) -> str:
    """The single key function applied before every tally lookup or insert."""
    return address.lower()


class EmailTally:
    """Occurrence counts keyed by normalised address, kept in first-seen order."""

    def __init__(self) -> None:
        self._counts: Dict[str, int] = {}

    def record(self, address: str) -> int:
        """Count one sighting of ``address`` and return its updated total.

        A return value of 1 means the address had not been seen before.
        """
        key = normalize_address(address)
        count = self._counts.get(key, 0) + 1
        self._counts[key] = count
        return count

    def count(self, address: str) -> int:
        return self._counts.get(normalize_address(address), 0)

    def snapshot(self) -> List[Tuple[str, int]]:
        return list(self._counts.items())

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and normalize_address(address) in self._counts

    def __len__(self) -> int:
        return len(self._counts)


# ---------------------------------------------------------------------------
# File discovery
# ---------------------------------------------------------------------------
def list_files_recursive(directory: Path) -> List[Path]:
    # Every file type is included; there is no extension filter.
    return sorted(path for path in directory.rglob("*") if path.is_file())


# ---------------------------------------------------------------------------
# File scanning
# ---------------------------------------------------------------------------
def detect_encoding(path: Path) -> str:
    """Pick a decoder from the byte-order mark, falling back to UTF-8."""
    with open(path, "rb") as f:
        head = f.read(4)
    for bom, encoding in BOM_ENCODINGS:
        if head.startswith(bom):
            return encoding
    return DEFAULT_ENCODING


def scan_file(
    path: Path,
    tally: EmailTally,
    *,
    log: logging.Logger = LOGGER,
    errors: str = DEFAULT_DECODE_ERRORS,
) -> ScanResult:
    """Feed every email-like token in ``path`` into ``tally``.

    Undecodable bytes are replaced unless ``errors`` says otherwise. Failures
    to open, read or decode the file are logged and returned in the result
    rather than raised. Anything recorded before the failure is kept.
    """
    result = ScanResult(path=path)
    log.info("Processing '%s'", path)
    try:
        encoding = detect_encoding(path)
        with open(path, "r", encoding=encoding, errors=errors) as f:
            for line_number, line in enumerate(f, start=1):
                result.lines_read = line_number
                hits = 0
                for address in iter_email_matches(line):
                    hits += 1
                    if tally.record(address) == 1:
                        result.new_addresses += 1
                        log.debug("Found new email address '%s'!", normalize_address(address))
                result.matches += hits
                if hits and log.isEnabledFor(TRACE):
                    log.log(TRACE, "%s:%s: %s match(es)", path, line_number, hits)
    except (OSError, UnicodeError) as exc:
        result.error = str(exc)
        log.error("Unable to process file '%s'. Error: %s", path, exc)
    return result


# ---------------------------------------------------------------------------
# Report writing
# ---------------------------------------------------------------------------
def render_report(entries: Iterable[Tuple[str, int]]) -> str:
    """Serialise tally entries as CSV text, ascending by count.

    Ties keep the order in which the entries were supplied.
    """
    frame = pd.DataFrame(list(entries), columns=REPORT_COLUMNS)
    frame = frame.sort_values("Count", kind="stable")
    return frame.to_csv(index=False, lineterminator="\n")


def write_report(entries: Iterable[Tuple[str, int]], output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    text = render_report(entries)
    temp_path = output_path.with_suffix(".tmp")
    try:
        with temp_path.open("w", encoding=DEFAULT_ENCODING, newline="") as f:
            f.write(text)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise
    temp_path.replace(output_path)
    return output_path


# ---------------------------------------------------------------------------
# Progress indicator
# ---------------------------------------------------------------------------
class ProgressReporter:
    """Thin wrapper around tqdm; silent unless ``enabled`` is set."""

    def __init__(self, total: Optional[int] = None, description: str = "Scanning", enabled: bool = False) -> None:
        self._bar = tqdm(total=total, desc=description, unit="file", disable=not enabled)

    def update(self, increment: int = 1) -> None:
        self._bar.update(increment)

    def close(self) -> None:
        self._bar.close()


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------
def resolve_file_set(
    file: Optional[Path] = None,
    directory: Optional[Path] = None,
    *,
    lister: Callable[[Path], Sequence[Path]] = list_files_recursive,
) -> Tuple[Path, ...]:
    if file is None and directory is None:
        raise ConfigurationError("-f or -d is required.")
    if file is not None and directory is not None:
        raise ConfigurationError("Only one of -f or -d may be given.")

    if file is not None:
        if not file.is_file():
            raise ConfigurationError(f"File '{file}' does not exist.")
        return (file,)

    if not directory.is_dir():
        raise ConfigurationError(f"Directory '{directory}' does not exist.")
    return tuple(lister(directory))


def build_output_name(now: datetime) -> str:
    return f"{now.astimezone(timezone.utc):{OUTPUT_TIMESTAMP_FORMAT}}{OUTPUT_NAME_SUFFIX}"


def prepare_output_path(output_dir: Path, now: Optional[datetime] = None) -> Path:
    now = now or datetime.now(timezone.utc)
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir / build_output_name(now)


def summary_message(unique_emails: int, files_processed: int) -> str:
    suffix = "" if files_processed == 1 else "s"
    return f"Finished. Found {unique_emails:,} unique emails in {files_processed:,} file{suffix}"


def run(
    file_set: Sequence[Path],
    output_dir: Path,
    *,
    log: logging.Logger = LOGGER,
    now: Optional[datetime] = None,
    errors: str = DEFAULT_DECODE_ERRORS,
    progress: bool = False,
) -> RunSummary:
    """Scan ``file_set`` into one tally and write the report under ``output_dir``."""
    output_path = prepare_output_path(output_dir, now)
    log.warning("CSV output will be saved to '%s'", output_path)
    log.log(SUMMARY, "Files found: %s", f"{len(file_set):,}")

    tally = EmailTally()
    failed = 0
    reporter = ProgressReporter(total=len(file_set), enabled=progress)
    try:
        for path in file_set:
            if not scan_file(path, tally, log=log, errors=errors).ok:
                failed += 1
            reporter.update()
    finally:
        reporter.close()

    log.debug("Writing results to CSV...")
    write_report(tally.snapshot(), output_path)

    if failed:
        log.warning("%s of %s file(s) could not be processed", failed, len(file_set))
    log.log(SUMMARY, summary_message(len(tally), len(file_set)))

    return RunSummary(
        unique_emails=len(tally),
        files_processed=len(file_set),
        files_failed=failed,
        output_path=output_path,
    )


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
def setup_logging(log_path: Optional[Path] = None, debug: bool = False, trace: bool = False) -> None:
    handlers: List[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter("%(message)s"))
    handlers.append(stream_handler)

    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
        handlers.append(file_handler)

    if trace:
        level = TRACE
    elif debug:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(level=level, handlers=handlers)
    LOGGER.setLevel(level)
    LOGGER.debug("Logging initialised. Level=%s", logging.getLevelName(level))


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Count email addresses found in a file or directory tree and write the totals to CSV.",
        epilog='Example: email-counter -f "/tmp/someFile.txt" --csv "/tmp/out"',
    )
    parser.add_argument("-f", "--file", type=Path, help="File to process. This or -d required")
    parser.add_argument("-d", "--directory", type=Path, help="Directory to process recursively. This or -f required")
    parser.add_argument("--csv", type=Path, required=True, help="Directory to save CSV formatted results to")
    parser.add_argument("--log-file", type=Path, default=None, help="Optional log file path (rotating logs are used)")
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat undecodable bytes as an error for that file instead of replacing them",
    )
    parser.add_argument("--progress", action="store_true", help="Show a progress bar while scanning")
    parser.add_argument("--debug", action="store_true", help="Show debug information during processing")
    parser.add_argument("--trace", action="store_true", help="Show trace information during processing")
    parser.add_argument("--version", action="version", version=BANNER)
    return parser


# ---------------------------------------------------------------------------
# Main execution entry point
# ---------------------------------------------------------------------------
def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_file, debug=args.debug, trace=args.trace)

    try:
        file_set = resolve_file_set(args.file, args.directory)
    except ConfigurationError as exc:
        if args.file is None and args.directory is None:
            parser.print_help()
        LOGGER.warning("%s Exiting", exc)
        return 1

    LOGGER.info(BANNER)
    LOGGER.info("")
    LOGGER.info("Command line: %s\n", " ".join(sys.argv[1:] if argv is None else argv))

    try:
        run(
            file_set,
            args.csv,
            errors=STRICT_DECODE_ERRORS if args.strict else DEFAULT_DECODE_ERRORS,
            progress=args.progress,
        )
    except OSError as exc:
        LOGGER.exception("Processing failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
