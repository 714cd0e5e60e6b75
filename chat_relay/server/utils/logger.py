"""
Server logging module.

This module handles server-side logging functionality.
"""

import logging
from datetime import datetime
from pathlib import Path

from chat_relay.common.constants import LOG_DIR, CHAT_LOG_FILE


class ServerLogger:
    """Server logging class."""
    
    def __init__(self, logs_dir: str = LOG_DIR, log_level: int = logging.INFO):
        self.logger = logging.getLogger('chat_relay_server')
        self.logger.setLevel(log_level)
        
        # Remove existing handlers
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)
        
        # Create console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        
        # Create formatter
        formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler.setFormatter(formatter)
        
        # Add handler to logger
        self.logger.addHandler(console_handler)
        
        self.set_logs_dir(logs_dir)
    
    def set_logs_dir(self, logs_dir: str):
        """Point the chat history file at a logs directory (created lazily)."""
        self.logs_dir = Path(logs_dir)
        self.chat_log_path = self.logs_dir / CHAT_LOG_FILE
    
    def set_level(self, log_level: int):
        """Change the level of the logger and its handlers."""
        self.logger.setLevel(log_level)
        for handler in self.logger.handlers:
            handler.setLevel(log_level)
    
    def info(self, message: str):
        """Log info message."""
        self.logger.info(message)
    
    def error(self, message: str):
        """Log error message."""
        self.logger.error(message)
    
    def warning(self, message: str):
        """Log warning message."""
        self.logger.warning(message)
    
    def debug(self, message: str):
        """Log debug message."""
        self.logger.debug(message)
    
    def log_connection(self, addr):
        """Log inbound connection."""
        self.info(f"Incoming connection from {addr}")
    
    def log_join(self, username: str, session_id: str):
        """Log user join."""
        self.info(f"User connected: {username} (id={session_id})")
    
    def log_disconnect(self, username: str, session_id: str):
        """Log user disconnect."""
        self.info(f"User {username} (id={session_id}) disconnected")
    
    def log_chat(self, username: str, session_id: str, message: str):
        """Log chat message."""
        self.info(f"Chat from {username} (id={session_id}): {message}")
        self._write_to_file(self.chat_log_path, f"{datetime.now().isoformat()} | {username} ({session_id}) | {message}")
    
    def log_whisper(self, from_username: str, to_username: str, message: str):
        """Log whisper message."""
        self.info(f"WHISPER from {from_username} to {to_username}")
        self._write_to_file(self.chat_log_path, f"{datetime.now().isoformat()} | [WHISPER {from_username}->{to_username}] | {message}")
    
    def log_error(self, operation: str, error: Exception):
        """Log error with operation context."""
        self.error(f"Error in {operation}: {error}")
    
    def _write_to_file(self, file_path: Path, content: str):
        """Write content to log file."""
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, 'a', encoding='utf-8') as f:
                f.write(content + '\n')
        except Exception as e:
            self.error(f"Failed to write to log file {file_path}: {e}")


# Global logger instance
logger = ServerLogger()
