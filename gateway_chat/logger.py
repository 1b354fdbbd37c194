"""
Console logging for the gateway chat client and its tools.
Color-coded, print-based; tests switch it off with Logger.enabled = False.
"""

# ANSI Color Codes
class Colors:
    """ANSI escape codes for terminal colors"""
    RESET = '\033[0m'
    ORANGE = '\033[38;5;214m'
    GREEN = '\033[38;5;46m'
    RED = '\033[38;5;196m'
    YELLOW = '\033[38;5;208m'
    CYAN = '\033[38;5;51m'
    MAGENTA = '\033[38;5;201m'


class Logger:
    """
    Color-coded console output shared by the client, CLI and harness.
    debug() lines carry a component tag (TX, RX, TRANSPORT, ...) and only
    print in verbose mode.
    """

    # Class variables: global switch and verbose (debug) mode
    enabled: bool = True
    verbose: bool = False

    @staticmethod
    def _emit(line: str) -> None:
        if Logger.enabled:
            print(line, flush=True)

    @staticmethod
    def success(message: str) -> None:
        """Print success message with green checkmark"""
        Logger._emit(f"{Colors.GREEN}✓{Colors.RESET} {message}")

    @staticmethod
    def error(message: str) -> None:
        """Print error message with red X"""
        Logger._emit(f"{Colors.RED}✗{Colors.RESET} {message}")

    @staticmethod
    def info(message: str) -> None:
        """Print info message with cyan color"""
        Logger._emit(f"{Colors.CYAN}[INFO]{Colors.RESET} {message}")

    @staticmethod
    def warning(message: str) -> None:
        """Print warning message with yellow color"""
        Logger._emit(f"{Colors.YELLOW}[WARNING]{Colors.RESET} {message}")

    @staticmethod
    def debug(tag: str, message: str) -> None:
        """Print debug message with orange color (verbose mode only)"""
        if Logger.verbose:
            Logger._emit(f"{Colors.ORANGE}[{tag}]{Colors.RESET} {message}")

    @staticmethod
    def section(title: str) -> None:
        """Print a section title (CLI transcript dump)"""
        Logger._emit(f"\n{Colors.CYAN}=== {title} ==={Colors.RESET}")

    @staticmethod
    def header(text: str) -> None:
        """Print a banner between separator lines"""
        Logger._emit(f"{Colors.CYAN}{'='*60}{Colors.RESET}")
        Logger._emit(f"{Colors.CYAN}{text}{Colors.RESET}")
        Logger._emit(f"{Colors.CYAN}{'='*60}{Colors.RESET}")

