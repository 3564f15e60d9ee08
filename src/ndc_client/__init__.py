"""Async client for NDC endpoints that stream several messages per response.

Provides request execution, typed YAML configuration, and a streaming
demultiplexer delivering delimiter-terminated frames to callbacks or
channels.
"""

from ndc_client.channel import FrameChannel
from ndc_client.client import CallbackContext, ClientOptions, NDCClient, NDCResponse
from ndc_client.config import ConfigLoader, NDCConfig
from ndc_client.exceptions import (
    ChannelClosedError,
    ConfigurationError,
    HeaderCallbackError,
    NDCError,
    StreamReadError,
    TransportError,
    UnsupportedMethodError,
)
from ndc_client.framing import DEFAULT_DELIMITER, FrameSplitter, split_frames
from ndc_client.message import DEFAULT_SUPPORTED_METHODS, Message, NDCMessage
from ndc_client.sync import WaitGroup

__all__ = [
    "DEFAULT_DELIMITER",
    "DEFAULT_SUPPORTED_METHODS",
    "CallbackContext",
    "ChannelClosedError",
    "ClientOptions",
    "ConfigLoader",
    "ConfigurationError",
    "FrameChannel",
    "FrameSplitter",
    "HeaderCallbackError",
    "Message",
    "NDCClient",
    "NDCConfig",
    "NDCError",
    "NDCMessage",
    "NDCResponse",
    "StreamReadError",
    "TransportError",
    "UnsupportedMethodError",
    "WaitGroup",
    "split_frames",
]
