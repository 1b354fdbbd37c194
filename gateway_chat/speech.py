"""
Text-to-speech side effect for finished assistant replies.

Runs an external command (e.g. `say` on macOS, `espeak` or a piper wrapper
on Linux) with the reply text as its last argument.
"""

import shlex
import subprocess
import threading
from typing import List, Optional, Union

from .logger import Logger


class SpeechHook:
    """
    Callable suitable for ChatReconciler.on_final.

    Speech runs in a background thread so the reader thread is never blocked;
    failures are logged and otherwise ignored.
    """

    def __init__(self, command: Union[str, List[str]], timeout: float = 120.0):
        """
        Args:
            command: Command line (string or argv list); the text is appended
            timeout: Seconds before a stuck speech process is abandoned
        """
        self.argv = shlex.split(command) if isinstance(command, str) else list(command)
        if not self.argv:
            raise ValueError("Speech command is empty")
        self.timeout = timeout
        self._last_thread: Optional[threading.Thread] = None

    def __call__(self, run_id: str, text: str) -> None:
        thread = threading.Thread(target=self.speak, args=(text,), daemon=True, name=f"Speech-{run_id}")
        self._last_thread = thread
        thread.start()

    def speak(self, text: str) -> bool:
        """Run the speech command synchronously; True on exit code 0"""
        try:
            result = subprocess.run(
                self.argv + [text],
                capture_output=True,
                timeout=self.timeout
            )
        except subprocess.TimeoutExpired:
            Logger.error("Timeout while speaking reply")
            return False
        except FileNotFoundError:
            Logger.error(f"Speech command not found: {self.argv[0]}")
            return False
        except OSError as e:
            Logger.error(f"Error running speech command: {e}")
            return False

        if result.returncode != 0:
            error = result.stderr.decode(errors='replace').strip()
            Logger.error(f"Speech command failed: {error}")
            return False
        return True

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the most recent speech thread (used by tests and shutdown)"""
        if self._last_thread is not None:
            self._last_thread.join(timeout=timeout)
