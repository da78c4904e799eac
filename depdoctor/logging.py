"""Logging configuration for depdoctor.

Logs go to stderr so JSON reports on stdout stay machine-readable.
Progress is drawn with tqdm when stderr is an interactive terminal.

Nothing is attached to the package logger at import time; the CLI calls
``configure_logging`` and library callers either do the same or pass their
own ``logging.Logger`` into each component.
"""

import logging
import os
import sys
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

from tqdm import tqdm

T = TypeVar("T")

LOGGER_NAME = "depdoctor"

_BAR_FORMAT = "{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]"

logger = logging.getLogger(LOGGER_NAME)
logger.addHandler(logging.NullHandler())


def _progress_disabled() -> bool:
    """Progress is off when DEPDOCTOR_DISABLE_PROGRESS is truthy or stderr is not a TTY."""
    flag = os.getenv("DEPDOCTOR_DISABLE_PROGRESS", "").lower()
    return flag in ("1", "true", "yes") or not sys.stderr.isatty()


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """Attach a stderr handler to the package logger.

    Safe to call more than once; the handler is only added the first time.

    Args:
        level: Minimum level to emit.

    Returns:
        The configured package logger.
    """
    logger.setLevel(level)

    if not any(getattr(h, "_depdoctor", False) for h in logger.handlers):
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(
            logging.Formatter(
                "[depdoctor] %(asctime)s %(levelname)s: %(message)s",
                datefmt="%H:%M:%S",
            )
        )
        stream._depdoctor = True  # type: ignore[attr-defined]
        logger.addHandler(stream)

    for h in logger.handlers:
        h.setLevel(level)

    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """Return the package logger or one of its children.

    Args:
        name: Dotted suffix (e.g. "tree_builder"). A full module name that
            already starts with "depdoctor." is used as-is.
    """
    if not name:
        return logger
    if name == LOGGER_NAME or name.startswith(LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logger.getChild(name)


class TimingContext:
    """Wall-clock timing for one ``log_operation`` block.

    ``elapsed`` (seconds) and ``elapsed_ms`` are filled in when the block ends.
    """

    def __init__(self) -> None:
        self.started_at = time.perf_counter()
        self.elapsed = 0.0

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed * 1000

    def finish(self) -> float:
        self.elapsed = time.perf_counter() - self.started_at
        return self.elapsed


@contextmanager
def log_operation(
    operation: str,
    details: dict[str, Any] | None = None,
    log: logging.Logger | None = None,
) -> Iterator[TimingContext]:
    """Log the start, completion or failure of an operation with its duration.

    Args:
        operation: Name shown in the log lines.
        details: key=value pairs appended to the start line.
        log: Logger to write to (defaults to the package logger).

    Yields:
        TimingContext, complete once the block exits.

    Example:
        with log_operation("build_tree", {"root": root}) as timing:
            nodes = await builder.build(store)
        log.debug("walk took %.1fms", timing.elapsed_ms)
    """
    log = log or logger
    suffix = "".join(f" {k}={v}" for k, v in (details or {}).items())
    log.info("▶ Starting %s%s", operation, suffix)

    timing = TimingContext()
    try:
        yield timing
    except Exception as e:
        log.error("✗ %s failed after %.2fs: %s", operation, timing.finish(), e)
        raise
    log.info("✓ Completed %s in %.2fs", operation, timing.finish())


# Progress bars (tqdm)


def _new_bar(desc: str | None, unit: str, **kwargs: Any) -> tqdm:
    return tqdm(
        desc=f"  {desc}" if desc else None,
        unit=unit,
        file=sys.stderr,
        ncols=80,
        leave=False,
        bar_format=_BAR_FORMAT,
        **kwargs,
    )


def progress_bar(
    iterable: Iterable[T],
    desc: str | None = None,
    total: int | None = None,
    unit: str = "it",
    disable: bool = False,
) -> Iterable[T]:
    """Iterate with a stderr progress bar when one can be shown.

    With progress off, ``iterable`` is returned as-is; large batches get a
    single info line instead.
    """
    if disable or _progress_disabled():
        if not disable and total and total > 100:
            logger.info("  %s: %d %s to process", desc or "Progress", total, unit)
        return iterable
    return _new_bar(desc, unit, iterable=iterable, total=total)


class ProgressBar:
    """Manually advanced progress bar, for work that finishes out of order.

    Example:
        with ProgressBar(total=len(tasks), desc="Registry lookups") as pbar:
            for task in tasks:
                task.add_done_callback(lambda _: pbar.update())
    """

    def __init__(
        self,
        total: int,
        desc: str | None = None,
        unit: str = "it",
        disable: bool = False,
    ) -> None:
        self.total = total
        self.desc = desc
        self.unit = unit
        self.disable = disable
        self.count = 0
        self._bar: tqdm | None = None
        self._timing = TimingContext()

    def __enter__(self) -> "ProgressBar":
        self._timing = TimingContext()
        if not (self.disable or _progress_disabled()):
            self._bar = _new_bar(self.desc, self.unit, total=self.total)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None
        elif self.count and not self.disable:
            logger.debug(
                "  %s: %d %s in %.2fs",
                self.desc or "Progress",
                self.count,
                self.unit,
                self._timing.finish(),
            )

    def update(self, n: int = 1) -> None:
        self.count += n
        if self._bar is not None:
            self._bar.update(n)
