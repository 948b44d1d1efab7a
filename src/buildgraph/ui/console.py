"""Console output formatting for buildgraph."""

from __future__ import annotations

import sys
from typing import Callable, Iterable, Optional, Sequence


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, headless: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            headless: If True, wrap each target in CI log groups
        """
        self.debug = debug
        self.headless = headless
        self.mask: Callable[[str], str] = lambda text: text

    def print_run_started(
        self,
        repository: str,
        build_file: str,
        requested: Sequence[str],
        target_count: int,
    ) -> None:
        """Print run start information."""
        print("\nRUN STARTED")
        print(f"Repository: {repository}")
        print(f"Build: {build_file}")
        print(f"Requested: {', '.join(requested)}")
        print(f"Targets to run: {target_count}")
        print()

    def print_target_start(self, name: str) -> None:
        if self.headless:
            print(f"##[group]{name}", flush=True)
        else:
            print(f"\nTARGET STARTED: {name}")

    def print_target_end(self, name: str) -> None:
        if self.headless:
            print("##[endgroup]", flush=True)

    def print_step(self, name: str) -> None:
        """Print step start message."""
        print(f"STEP: {name}")

    def print_output(self, text: str) -> None:
        """Print captured process output, secrets masked."""
        text = text.rstrip()
        if text:
            print(self.mask(text))

    def print_success(self, name: str, duration: Optional[float] = None) -> None:
        """Print success message."""
        suffix = f" ({duration:.1f}s)" if duration is not None else ""
        print(f"STATUS: success{suffix}")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
        is_target: bool = False,
    ) -> None:
        """
        Print failure message.

        Args:
            name: Target or step name
            reason: Failure reason/error message
            exit_code: Optional exit code
            hint: Optional hint for user
            is_target: If True, print "TARGET FAILED", otherwise "STEP FAILED"
        """
        prefix = "TARGET FAILED" if is_target else "STEP FAILED"
        print(f"{prefix}: {name}")
        if exit_code is not None:
            print(f"Exit code: {exit_code}")
        if hint:
            print(f"Hint: {hint}")
        reason = self.mask(reason or "")
        if self.debug:
            print(f"Error details: {reason}")
        else:
            # first line only outside debug mode
            print(f"Error: {reason.splitlines()[0] if reason else 'Unknown error'}")

    def print_target_skipped(self, name: str, reason: str) -> None:
        """Print target skipped message."""
        print(f"\nTARGET SKIPPED: {name}")
        print(f"Reason: {reason}")

    def print_summary(self, rows: Iterable[tuple[str, str, Optional[float]]]) -> None:
        """Print the final table: name, status, duration."""
        rows = list(rows)
        width = max([len("Target")] + [len(n) for n, _, _ in rows])
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        print(f"  {'Target'.ljust(width)}  {'Status'.ljust(9)}  Duration")
        for name, status, duration in rows:
            shown = f"{duration:.1f}s" if duration is not None else "-"
            print(f"  {name.ljust(width)}  {status.upper().ljust(9)}  {shown}")

    def print_targets(self, targets: Iterable[tuple[str, Optional[str]]]) -> None:
        """Print target names with their descriptions."""
        targets = list(targets)
        width = max([0] + [len(n) for n, _ in targets])
        for name, description in targets:
            print(f"  {name.ljust(width)}  {description or ''}".rstrip())

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {self.mask(str(exc))}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)


# Global console instance (initialized by the CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
