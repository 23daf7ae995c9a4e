import json
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variables for correlation
message_id_var: ContextVar[Optional[str]] = ContextVar('message_id', default=None)
channel_id_var: ContextVar[Optional[str]] = ContextVar('channel_id', default=None)
playlist_id_var: ContextVar[Optional[str]] = ContextVar('playlist_id', default=None)
stage_var: ContextVar[Optional[str]] = ContextVar('stage', default=None)

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Third-party loggers that are chatty at INFO
_NOISY_LOGGERS = ('spotipy', 'spotipy.client', 'spotipy.oauth2', 'urllib3', 'discord', 'discord.gateway', 'werkzeug')


class SecretMasker:
    """Masks sensitive information in log messages."""

    def __init__(self):
        """Initialize secret masker with patterns."""
        self.patterns = [
            # API tokens and keys
            r'(?i)(token|key|secret|password|auth)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{10,})["\']?',
            # Spotify access and refresh tokens
            r'(?i)(access_token|refresh_token)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # Discord bot tokens
            r'(?i)(discord_bot_token|bot_token)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # Client secrets
            r'(?i)(client_secret)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # Authorization headers
            r'(?i)(authorization|bearer)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{50,})["\']?',
            # OAuth codes
            r'(?i)(code|authorization_code)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
        ]

        self.compiled_patterns = [re.compile(pattern) for pattern in self.patterns]

    def mask_secrets(self, text: str) -> str:
        """Mask sensitive information in text."""
        if not text:
            return text

        masked_text = text

        for pattern in self.compiled_patterns:
            def replace_match(match):
                prefix = match.group(1)
                secret = match.group(2)
                # Keep first 4 and last 4 characters
                if len(secret) > 8:
                    masked_secret = secret[:4] + '*' * (len(secret) - 8) + secret[-4:]
                else:
                    masked_secret = '*' * len(secret)
                return f"{prefix}: {masked_secret}"

            masked_text = pattern.sub(replace_match, masked_text)

        return masked_text

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask sensitive information in dictionary values."""
        if not data:
            return data

        masked_data = {}

        for key, value in data.items():
            if isinstance(value, str):
                masked_data[key] = self.mask_secrets(value)
            elif isinstance(value, dict):
                masked_data[key] = self.mask_dict(value)
            elif isinstance(value, list):
                masked_data[key] = [self.mask_dict(item) if isinstance(item, dict)
                                    else self.mask_secrets(item) if isinstance(item, str)
                                    else item for item in value]
            else:
                masked_data[key] = value

        return masked_data


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self):
        super().__init__()
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': self.masker.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Correlation fields
        message_id = message_id_var.get()
        channel_id = channel_id_var.get()
        playlist_id = playlist_id_var.get()
        stage = stage_var.get()
        if message_id:
            log_entry['messageId'] = message_id
        if channel_id:
            log_entry['channelId'] = channel_id
        if playlist_id:
            log_entry['playlistId'] = playlist_id
        if stage:
            log_entry['stage'] = stage

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'fields') and record.fields:
            log_entry['fields'] = self.masker.mask_dict(record.fields)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class MaskingTextFormatter(logging.Formatter):
    """Plain text formatter that still masks secrets."""

    def __init__(self, fmt: str = TEXT_FORMAT):
        super().__init__(fmt)
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        if hasattr(record, 'fields') and record.fields:
            fields = self.masker.mask_dict(record.fields)
            text += ' ' + ' '.join(f"{k}={v}" for k, v in fields.items())
        return self.masker.mask_secrets(text)


class CorrelationContext:
    """Context manager for correlation data."""

    def __init__(self, message_id: Optional[Any] = None,
                 channel_id: Optional[Any] = None,
                 playlist_id: Optional[str] = None,
                 stage: Optional[str] = None):
        """Initialize correlation context."""
        self._values = {
            'message_id': (message_id_var, message_id),
            'channel_id': (channel_id_var, channel_id),
            'playlist_id': (playlist_id_var, playlist_id),
            'stage': (stage_var, stage),
        }
        self._tokens = []

    def __enter__(self):
        """Set correlation context."""
        for var, value in self._values.values():
            if value is not None:
                self._tokens.append((var, var.set(str(value))))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore correlation context."""
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def setup_logging(level: str = 'INFO',
                  log_file: Optional[str] = None,
                  json_format: bool = True) -> logging.Logger:
    """Setup logging for the ``radiobot`` logger tree."""
    logger = logging.getLogger('radiobot')
    logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers
    logger.handlers.clear()
    logger.propagate = False

    formatter = StructuredFormatter() if json_format else MaskingTextFormatter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def log_with_fields(logger: logging.Logger, level: str, message: str,
                    fields: Optional[Dict[str, Any]] = None, exc_info: bool = False, **kwargs):
    """Log message with additional fields."""
    extra_fields = dict(fields or {})
    extra_fields.update(kwargs)
    logger.log(getattr(logging, level.upper()), message,
               extra={'fields': extra_fields} if extra_fields else None,
               exc_info=exc_info)


def log_candidate(logger: logging.Logger, track_uri: str, author: Optional[str] = None):
    """Log a detected track link."""
    with CorrelationContext(stage='detect'):
        log_with_fields(logger, 'INFO', 'Track link detected', {
            'track_uri': track_uri,
            'author': author,
        })


def log_action(logger: logging.Logger, action_name: str, snapshot_size: int,
               capacity_bound: int, duration_ms: int, **kwargs):
    """Log an applied reconcile action."""
    with CorrelationContext(stage='reconcile'):
        log_with_fields(logger, 'INFO', f'Reconcile finished: {action_name}', {
            'action': action_name,
            'snapshot_size': snapshot_size,
            'capacity_bound': capacity_bound,
            'duration_ms': duration_ms,
            **kwargs
        })


def log_error(logger: logging.Logger, message: str, error: Exception, exc_info: bool = False, **kwargs):
    """Log error with exception details."""
    log_with_fields(logger, 'ERROR', message, {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    }, exc_info=exc_info)
