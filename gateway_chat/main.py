"""
Gateway Chat - interactive terminal client

Connects to the local agent gateway with this machine's device identity and
runs a chat session on the gateway's main session.

Usage:
    python -m gateway_chat.main                          # Use ~/.openclaw/openclaw.json
    python -m gateway_chat.main --port 18789 --token T   # Explicit credentials
    python -m gateway_chat.main --speak-cmd say          # Speak each reply
    python -m gateway_chat.main -v                       # Verbose (frame traces)

Commands inside the session:
    /history   print the transcript
    /quit      exit
"""

import argparse
import sys
from typing import Callable, Optional

from .client import GatewayChatClient
from .config import (
    DEFAULT_GATEWAY_HOST, DEFAULT_ORIGIN, GATEWAY_CONFIG_FILE, IDENTITY_DIR,
    RECONNECT_DELAY_SECONDS,
)
from .credentials import CredentialsError, GatewayConfig, load_gateway_config
from .hybrid_storage import HybridIdentityStorage
from .identity import IdentityStore
from .reconciler import ROLE_USER
from .speech import SpeechHook
from .logger import Logger, Colors


def add_connection_args(parser: argparse.ArgumentParser) -> None:
    """Arguments shared by the chat CLI and the verification harness"""
    parser.add_argument(
        '--config',
        default=GATEWAY_CONFIG_FILE,
        help=f'Gateway config file with port and token (default: {GATEWAY_CONFIG_FILE})'
    )
    parser.add_argument(
        '--host',
        default=DEFAULT_GATEWAY_HOST,
        help=f'Gateway host (default: {DEFAULT_GATEWAY_HOST})'
    )
    parser.add_argument(
        '--port',
        type=int,
        help='Gateway port (overrides the config file)'
    )
    parser.add_argument(
        '--token',
        help='Gateway bearer token (overrides the config file)'
    )
    parser.add_argument(
        '--origin',
        default=DEFAULT_ORIGIN,
        help=f'Origin header presented to the gateway (default: {DEFAULT_ORIGIN})'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose output'
    )


def config_from_args(args: argparse.Namespace) -> GatewayConfig:
    """
    Build the gateway config from CLI flags, reading the config file only for
    what the flags leave out.

    Raises:
        CredentialsError: If the config file is needed and unusable
    """
    if args.port is not None and args.token:
        return GatewayConfig(token=args.token, port=args.port, host=args.host, origin=args.origin)

    config = load_gateway_config(args.config, host=args.host, origin=args.origin)
    return GatewayConfig(
        token=args.token or config.token,
        port=args.port if args.port is not None else config.port,
        host=args.host,
        origin=args.origin,
    )


class ChatSession:
    """
    Terminal front-end: prints connectivity changes and finished replies,
    forwards typed lines to the gateway.
    """

    def __init__(self, config: GatewayConfig, identity_store: IdentityStore,
                 reconnect_delay: float = RECONNECT_DELAY_SECONDS,
                 speech: Optional[SpeechHook] = None,
                 transport_factory=None):
        self.speech = speech
        self.client = GatewayChatClient(
            config,
            identity_store=identity_store,
            transport_factory=transport_factory,
            reconnect_delay=reconnect_delay,
            on_final=self._on_final,
            on_run_error=self._on_run_error,
            on_connection_change=self._on_connection_change,
        )

    def _on_connection_change(self, connected: bool) -> None:
        if connected:
            Logger.success(f"Connected (session {self.client.session_key})")
        else:
            Logger.warning("Disconnected - reconnecting...")

    def _on_final(self, run_id: str, text: str) -> None:
        print(f"\n{Colors.MAGENTA}assistant>{Colors.RESET} {text}", flush=True)
        if self.speech is not None:
            self.speech(run_id, text)

    def _on_run_error(self, run_id: Optional[str], description: str) -> None:
        print(f"\n{Colors.RED}assistant>{Colors.RESET} {description}", flush=True)

    def _on_send_done(self, future) -> None:
        error = future.exception()
        if error is not None:
            print(f"\n{Colors.RED}Failed to send: {error}{Colors.RESET}", flush=True)

    def print_history(self) -> None:
        Logger.section("Transcript")
        for message in self.client.messages:
            color = Colors.CYAN if message.role == ROLE_USER else (Colors.RED if message.is_error else Colors.MAGENTA)
            print(f"{color}{message.role}>{Colors.RESET} {message.text}")

    def run(self, read_line: Callable[[str], str] = input) -> int:
        """
        Run the interactive loop until /quit, EOF or Ctrl+C.

        Returns:
            Exit code (0 = clean exit)
        """
        Logger.header("Gateway Chat")
        print(f"Gateway: {self.client.config.url}")
        print("Type /history to show the transcript, /quit to exit")

        self.client.start()
        try:
            while True:
                try:
                    line = read_line("you> ")
                except EOFError:
                    break

                command = line.strip()
                if not command:
                    continue
                if command == '/quit':
                    break
                if command == '/history':
                    self.print_history()
                    continue

                future = self.client.send_message(line)
                if future is not None:
                    future.add_done_callback(self._on_send_done)

        except KeyboardInterrupt:
            print(f"\n\n{Colors.YELLOW}Shutting down...{Colors.RESET}")

        finally:
            self.client.close()

        return 0


# ============================================================================
# COMMAND LINE INTERFACE
# ============================================================================

def main(argv=None) -> int:
    """Main entry point for the interactive chat client."""
    parser = argparse.ArgumentParser(
        description='Gateway Chat - authenticated chat with the local agent gateway'
    )
    add_connection_args(parser)
    parser.add_argument(
        '--identity-dir',
        default=IDENTITY_DIR,
        help=f'Directory holding the device identity (default: {IDENTITY_DIR})'
    )
    parser.add_argument(
        '--reconnect-delay',
        type=float,
        default=RECONNECT_DELAY_SECONDS,
        help=f'Seconds to wait before reconnecting (default: {RECONNECT_DELAY_SECONDS})'
    )
    parser.add_argument(
        '--speak-cmd',
        help="Command used to speak each reply, e.g. 'say' or 'espeak'"
    )

    args = parser.parse_args(argv)
    Logger.verbose = args.verbose

    try:
        config = config_from_args(args)
    except CredentialsError as e:
        Logger.error(f"Failed to get gateway config: {e}")
        return 1

    speech = None
    if args.speak_cmd:
        try:
            speech = SpeechHook(args.speak_cmd)
        except ValueError as e:
            Logger.error(str(e))
            return 1

    identity_store = IdentityStore(HybridIdentityStorage(args.identity_dir))
    session = ChatSession(config, identity_store, reconnect_delay=args.reconnect_delay, speech=speech)
    return session.run()


if __name__ == '__main__':
    sys.exit(main())
