"""
Server configuration module.

This module handles server-side configuration settings.
"""

from chat_relay.common.constants import (
    DEFAULT_SERVER_HOST, DEFAULT_PORT, LOG_DIR, MAX_LINE_BYTES,
    OUTBOUND_QUEUE_SIZE, WRITE_TIMEOUT, MAX_ID_ATTEMPTS, EVENT_STREAM_BUFFER
)


class ServerConfig:
    """Server configuration class."""
    
    def __init__(self, host: str = DEFAULT_SERVER_HOST, port: int = DEFAULT_PORT, logs_dir: str = LOG_DIR):
        self.host = host
        self.port = port
        
        # Logging configuration
        self.logs_dir = logs_dir
        
        # Protocol limits
        self.max_line_bytes = MAX_LINE_BYTES
        
        # Outbound delivery settings
        self.outbound_queue_size = OUTBOUND_QUEUE_SIZE
        self.write_timeout = WRITE_TIMEOUT  # seconds
        
        # Identity settings
        self.max_id_attempts = MAX_ID_ATTEMPTS
        
        # Event stream settings
        self.event_buffer_size = EVENT_STREAM_BUFFER
    
    def get_connection_info(self):
        """Get connection information."""
        return {
            'host': self.host,
            'port': self.port
        }
    
    def get_delivery_settings(self):
        """Get outbound delivery settings."""
        return {
            'max_line_bytes': self.max_line_bytes,
            'outbound_queue_size': self.outbound_queue_size,
            'write_timeout': self.write_timeout
        }
    
    def get_log_settings(self):
        """Get logging settings."""
        return {
            'logs_dir': self.logs_dir
        }
