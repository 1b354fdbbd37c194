"""
Gateway Chat Configuration Constants

Configuration values for the gateway chat client.
"""

import os
import sys

# Protocol Configuration
# The gateway negotiates within [minProtocol, maxProtocol]; we speak exactly v3.
PROTOCOL_VERSION = 3

# Client metadata sent in the connect request and in the signed payload.
# CLIENT_ID must be an id the gateway recognises as a control UI.
CLIENT_ID = "openclaw-control-ui"
CLIENT_VERSION = "0.1.0"
CLIENT_MODE = "webchat"
CLIENT_ROLE = "operator"
SCOPES = ["operator.admin", "operator.approvals", "operator.pairing"]

if sys.platform == "darwin":
    CLIENT_PLATFORM = "macos"
elif sys.platform.startswith("win"):
    CLIENT_PLATFORM = "windows"
else:
    CLIENT_PLATFORM = "linux"

# Signed payload format version (first field of the pipe-delimited payload)
AUTH_PAYLOAD_VERSION = "v2"

# Well-known id of the connect request
CONNECT_REQUEST_ID = "connect-1"

# Session used until the gateway tells us otherwise
DEFAULT_SESSION_KEY = "agent:main:main"

# Timing
# Per-request timeout in seconds for correlated requests
REQUEST_TIMEOUT_SECONDS = 30

# Fixed delay before reconnecting after the socket closes (no backoff, no cap)
RECONNECT_DELAY_SECONDS = 3

# Seconds to wait for the websocket opening handshake
OPEN_TIMEOUT_SECONDS = 10

# Number of messages requested when seeding the transcript
HISTORY_LIMIT = 100

# Gateway location
DEFAULT_GATEWAY_HOST = "127.0.0.1"
DEFAULT_ORIGIN = "tauri://localhost"

# Gateway's own config file, holds gateway.port and gateway.auth.token
GATEWAY_CONFIG_FILE = os.path.join(os.path.expanduser("~"), ".openclaw", "openclaw.json")

# Device identity storage
IDENTITY_DIR = os.path.join(os.path.expanduser("~"), ".openclaw-dashboard")
IDENTITY_KEY_ID = "openclaw-dashboard-device-identity"
IDENTITY_VERSION = 1

# Verification harness
VERIFY_TIMEOUT_SECONDS = 45
VERIFY_OUTPUT_FILE = "gateway-test-output.txt"
