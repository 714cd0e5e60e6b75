"""
Client configuration module.

This module handles client-side configuration settings.
"""

from chat_relay.common.constants import (
    DEFAULT_HOST, DEFAULT_PORT, DEFAULT_DISPLAY_NAME, TYPING_TTL, EVENT_STREAM_BUFFER
)


class ClientConfig:
    """Client configuration class."""
    
    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, username: str = None):
        self.host = host
        self.port = port
        self.username = (username or '').strip() or DEFAULT_DISPLAY_NAME
        
        # Connection settings
        self.connect_attempts = 3
        self.retry_delay_base = 1.0  # seconds, doubled per attempt
        
        # Typing indicator settings
        self.typing_ttl = TYPING_TTL  # seconds
        
        # Event stream settings
        self.event_buffer_size = EVENT_STREAM_BUFFER
    
    def get_connection_info(self):
        """Get connection information."""
        return {
            'host': self.host,
            'port': self.port,
            'username': self.username
        }
