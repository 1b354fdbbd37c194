"""
Gateway Chat Package
Authenticated chat client for the local agent gateway.
"""

__version__ = '0.1.0'

from .client import GatewayChatClient
from .correlator import (
    GatewayError, NotConnectedError, ConnectionLostError, RequestTimeoutError,
    GatewayRequestError,
)
from .credentials import CredentialsError, GatewayConfig, load_gateway_config
from .identity import DeviceIdentity, IdentityStore
from .parser import FrameParser, FrameParserError, ProtocolError
from .reconciler import ChatMessage, ChatReconciler

__all__ = [
    'GatewayChatClient',
    'GatewayError',
    'NotConnectedError',
    'ConnectionLostError',
    'RequestTimeoutError',
    'GatewayRequestError',
    'CredentialsError',
    'GatewayConfig',
    'load_gateway_config',
    'DeviceIdentity',
    'IdentityStore',
    'FrameParser',
    'FrameParserError',
    'ProtocolError',
    'ChatMessage',
    'ChatReconciler',
]
