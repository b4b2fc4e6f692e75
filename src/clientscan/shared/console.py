import logging
from typing import TYPE_CHECKING, Any

from colorama import Fore, Style, init

if TYPE_CHECKING:
    from clientscan.usage.models import UsageStats

# --- Logger Wrapper for Color/Quiet/Verbose ---

classLogger = logging.getLogger("clientscan")


class ConsoleManager:
    """Manages console output, respecting quiet/verbose/color flags."""

    def __init__(self, level: int, no_color: bool):
        self.level = level
        self.no_color = no_color
        if not no_color:
            init(autoreset=True)

    def _log(self, msg: str, log_level: int, color: str = "", **kwargs: Any):
        if log_level < self.level:
            return

        if not self.no_color and color:
            msg = f"{color}{msg}{Style.RESET_ALL}"

        classLogger.log(log_level, msg, **kwargs)

    def debug(self, msg: str):
        self._log(msg, logging.DEBUG, Style.DIM)

    def info(self, msg: str):
        self._log(msg, logging.INFO)

    def warning(self, msg: str):
        self._log(msg, logging.WARNING, Fore.YELLOW)

    def error(self, msg: str):
        self._log(msg, logging.ERROR, Fore.RED)

    def critical(self, msg: str, exc_info: bool = False):
        self._log(msg, logging.CRITICAL, Fore.RED + Style.BRIGHT, exc_info=exc_info)

    def print_summary(self, stats: "UsageStats"):
        """Print the final summary table."""
        if self.level > logging.INFO:  # Only suppress if quiet
            return

        print("\n--- Client Usage Summary ---")

        # Helper for coloring non-zero values
        def color_val(val, color_if_nonzero):
            if val > 0 and not self.no_color and color_if_nonzero:
                return f"{color_if_nonzero}{val}{Style.RESET_ALL}"
            return str(val)

        summary_data = [
            ("Files Scanned", stats["files_scanned"], ""),
            ("Files Excluded", stats["files_excluded"], Style.DIM),
            ("Files Analyzed", stats["files_parsed_ok"], ""),
            ("File Errors", stats["files_parse_errors"], Fore.RED + Style.BRIGHT),
            ("Candidate Calls", stats["calls_scanned"], Style.DIM),
            ("Matched Calls", stats["calls_matched"], Fore.GREEN),
            ("  - Unresolved Types", stats["calls_unresolved"], Fore.YELLOW),
            ("Resources", stats["resources"], Fore.GREEN),
        ]

        max_label = max(len(label) for label, _, _ in summary_data)

        for label, value, color in summary_data:
            val_str = color_val(value, color)
            print(f"{label:<{max_label}} : {val_str}")

        print("----------------------------")
