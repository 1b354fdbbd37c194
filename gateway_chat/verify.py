"""
Gateway verification harness.

One-shot end-to-end check against a running gateway: connect with a fresh
throwaway device identity, send one test message, and wait for the reply to
finish. Every step is logged with a timestamp and the whole run is written
to an output file.

Outcomes:
    PASSED               first `final` chat event received
    FAILED (chat error)  the run ended with a chat `error` event
    FAILED               connect rejected, socket error, or chat.send rejected
    CLOSED_UNEXPECTEDLY  the connection dropped after the handshake
    TIMEOUT              nothing conclusive within the global timeout

Usage:
    python -m gateway_chat.verify
    python -m gateway_chat.verify --output /tmp/gateway-test-output.txt
"""

import argparse
import sys
import threading
from datetime import datetime, timezone
from typing import List, Optional

from .client import GatewayChatClient
from .config import VERIFY_OUTPUT_FILE, VERIFY_TIMEOUT_SECONDS
from .credentials import CredentialsError, GatewayConfig
from .identity import IdentityStore
from .memory_storage import MemoryIdentityStorage
from .main import add_connection_args, config_from_args
from .logger import Logger

TEST_MESSAGE = (
    "Gateway test (automated): reply with one short sentence confirming "
    "you received this. Do not engage further."
)

PASSED = "PASSED"
FAILED = "FAILED"
FAILED_CHAT_ERROR = "FAILED (chat error)"
CLOSED_UNEXPECTEDLY = "CLOSED_UNEXPECTEDLY"
TIMEOUT = "TIMEOUT"


def _timestamp() -> str:
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


class GatewayVerifier:
    """
    Drives a GatewayChatClient through connect -> chat.send -> final and
    records a timestamped log of the run.
    """

    def __init__(self, config: GatewayConfig, timeout: float = VERIFY_TIMEOUT_SECONDS,
                 transport_factory=None):
        self.config = config
        self.timeout = timeout
        self.lines: List[str] = []
        self.status: Optional[str] = None

        self._lock = threading.Lock()
        self._done = threading.Event()
        self._sent = False

        # Fresh identity per run; the durable device identity is never touched
        self.identity_store = IdentityStore(MemoryIdentityStorage())
        self.client = GatewayChatClient(
            config,
            identity_store=self.identity_store,
            transport_factory=transport_factory,
            reconnect_delay=timeout,
            on_final=self._on_final,
            on_run_error=self._on_run_error,
            on_connection_change=self._on_connection_change,
            on_connect_error=self._on_connect_error,
        )

    # ========================================================================
    # Run
    # ========================================================================

    def run(self) -> str:
        """
        Execute the check; blocks until an outcome or the global timeout.

        Returns:
            Final status string (PASSED on success)
        """
        identity = self.identity_store.load_or_create()
        self.log(f"Gateway:   {self.config.url}")
        self.log(f"Token:     {self.config.token[:8]}...")
        self.log(f"Device id: {identity.device_id}")
        self.log("")
        self.log(f"[{_timestamp()}] Connecting...")

        self.client.start()
        if not self._done.wait(self.timeout):
            self.finish(TIMEOUT)

        self.client.close()
        return self.status

    def finish(self, status: str) -> None:
        """Record the outcome; only the first call counts"""
        with self._lock:
            if self.status is not None:
                return
            self.status = status
        self.log("")
        self.log("=" * 60)
        self.log(f"TEST {status} - {_timestamp()}")
        self.log("=" * 60)
        self._done.set()

    def log(self, line: str) -> None:
        with self._lock:
            self.lines.append(line)
        if Logger.enabled:
            print(line, flush=True)

    def render(self) -> str:
        """Output file contents: header plus the run log"""
        header = [
            "# Gateway Test Output",
            f"# Generated: {datetime.now(timezone.utc).isoformat()}",
            f"# Status:    {self.status}",
            "",
        ]
        return "\n".join(header + self.lines) + "\n"

    def write_output(self, path: str) -> bool:
        try:
            with open(path, 'w', encoding='utf-8') as f:
                f.write(self.render())
        except OSError as e:
            Logger.error(f"Failed to write {path}: {e}")
            return False
        Logger.info(f"Output written to {path}")
        return True

    # ========================================================================
    # Client callbacks
    # ========================================================================

    def _on_connection_change(self, connected: bool) -> None:
        if self._done.is_set():
            return
        if not connected:
            self.log(f"[{_timestamp()}] Connection closed")
            self.finish(CLOSED_UNEXPECTEDLY)
            return

        self.log(f"[{_timestamp()}] connect OK - sessionKey={self.client.session_key}")
        with self._lock:
            if self._sent:
                return
            self._sent = True

        self.log("")
        self.log(f"[{_timestamp()}] Sending chat.send test message...")
        future = self.client.send_message(TEST_MESSAGE)
        future.add_done_callback(self._on_send_done)

    def _on_send_done(self, future) -> None:
        if self._done.is_set():
            return
        error = future.exception()
        if error is not None:
            self.log(f"[{_timestamp()}] chat.send FAILED: {error}")
            self.finish(FAILED)
            return
        self.log(f"[{_timestamp()}] chat.send accepted: {str(future.result())[:120]}")

    def _on_connect_error(self, error: Exception) -> None:
        self.log(f"[{_timestamp()}] connect FAILED: {error}")
        self.finish(FAILED)

    def _on_final(self, run_id: str, text: str) -> None:
        self.log(f"[{_timestamp()}] chat final runId={run_id}")
        self.log(f"  final text: \"{text[:200]}\"")
        self.finish(PASSED)

    def _on_run_error(self, run_id: Optional[str], description: str) -> None:
        self.log(f"[{_timestamp()}] chat error runId={run_id}")
        self.log(f"  {description}")
        self.finish(FAILED_CHAT_ERROR)


# ============================================================================
# COMMAND LINE INTERFACE
# ============================================================================

def main(argv=None) -> int:
    """Main entry point for the verification harness."""
    parser = argparse.ArgumentParser(
        description='Gateway Chat - end-to-end gateway verification'
    )
    add_connection_args(parser)
    parser.add_argument(
        '--output',
        default=VERIFY_OUTPUT_FILE,
        help=f'File receiving the run log (default: {VERIFY_OUTPUT_FILE})'
    )
    parser.add_argument(
        '--timeout',
        type=float,
        default=VERIFY_TIMEOUT_SECONDS,
        help=f'Global timeout in seconds (default: {VERIFY_TIMEOUT_SECONDS})'
    )

    args = parser.parse_args(argv)
    Logger.verbose = args.verbose

    try:
        config = config_from_args(args)
    except CredentialsError as e:
        Logger.error(f"Failed to get gateway config: {e}")
        return 1

    Logger.header("Gateway Verification")
    verifier = GatewayVerifier(config, timeout=args.timeout)
    status = verifier.run()
    verifier.write_output(args.output)
    return 0 if status == PASSED else 1


if __name__ == '__main__':
    sys.exit(main())
