"""
Application configuration and paths.

Every value can be overridden with an environment variable of the same name.
"""
import os
import tempfile
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, default))


# Application identity
APP_NAME = 'SpeakEasy'
APP_VERSION = '0.1.0'

# Server configuration
SERVER_HOST = os.environ.get('SERVER_HOST', '127.0.0.1')
SERVER_PORT = _env_int('SERVER_PORT', 5111)

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

# Paths
DATA_DIR = Path(os.environ.get('SPEAKEASY_DATA_DIR', Path.home() / '.speakeasy'))

# Database configuration (job history and message inbox)
DATABASE_PATH = DATA_DIR / 'speakeasy.db'
DATABASE_URL = os.environ.get('DATABASE_URL', f'sqlite+aiosqlite:///{DATABASE_PATH}')

# Delivered audio
AUDIO_DIR = DATA_DIR / 'audio'

# Uploaded documents and voice notes waiting for a worker
UPLOADS_DIR = DATA_DIR / 'uploads'
MAX_UPLOAD_BYTES = _env_int('MAX_UPLOAD_BYTES', 20 * 1024 * 1024)

# Per-job assembly directories are created below this directory
SCRATCH_DIR = Path(os.environ.get('SCRATCH_DIR', tempfile.gettempdir()))

# Shared store
REDIS_URL = os.environ.get('REDIS_URL', 'redis://localhost:6379/0')
KEY_PREFIX = os.environ.get('KEY_PREFIX', 'tts')
# Every store call (queue claim and ack included) gives up after these
REDIS_SOCKET_TIMEOUT = _env_float('REDIS_SOCKET_TIMEOUT', 5.0)
REDIS_CONNECT_TIMEOUT = _env_float('REDIS_CONNECT_TIMEOUT', 2.0)

# Admission control
RATE_LIMIT_REQUESTS_PER_MINUTE = _env_int('RATE_LIMIT_REQUESTS_PER_MINUTE', 10)
RATE_LIMIT_CHARS_PER_DAY = _env_int('RATE_LIMIT_CHARS_PER_DAY', 20_000)
MINUTE_COUNTER_TTL = 2 * 60
DAY_COUNTER_TTL = 48 * 60 * 60

# Text chunking: stay a fixed margin below the provider's documented ceiling
PROVIDER_MAX_INPUT = 4096
MAX_CHUNK_LENGTH = _env_int('MAX_CHUNK_LENGTH', 4000)

# Speech provider
OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY', '')
OPENAI_BASE_URL = os.environ.get('OPENAI_BASE_URL', 'https://api.openai.com/v1')
TTS_MODEL = os.environ.get('TTS_MODEL', 'gpt-4o-mini-tts')
ENHANCE_MODEL = os.environ.get('ENHANCE_MODEL', 'gpt-4o-mini')
TRANSCRIBE_MODEL = os.environ.get('TRANSCRIBE_MODEL', 'whisper-1')
PROVIDER_TIMEOUT = _env_float('PROVIDER_TIMEOUT', 120.0)
PROVIDER_MAX_ATTEMPTS = _env_int('PROVIDER_MAX_ATTEMPTS', 3)
PROVIDER_BACKOFF_BASE = _env_float('PROVIDER_BACKOFF_BASE', 2.0)

# Worker pool
WORKER_POOL_SIZE = _env_int('WORKER_POOL_SIZE', 3)
QUEUE_POLL_INTERVAL = _env_float('QUEUE_POLL_INTERVAL', 1.0)
JOB_TIMEOUT = _env_float('JOB_TIMEOUT', 30 * 60.0)
SHUTDOWN_TIMEOUT = _env_float('SHUTDOWN_TIMEOUT', 10.0)

# Audio assembly
FFMPEG_PATH = os.environ.get('FFMPEG_PATH', 'ffmpeg')
ASSEMBLY_TIMEOUT = _env_float('ASSEMBLY_TIMEOUT', 120.0)
# Ogg/Opus: directly playable as a voice note and safe for stream-copy concat
AUDIO_EXTENSION = 'opus'
AUDIO_MEDIA_TYPE = 'audio/ogg'


def ensure_directories():
    """Create required directories if they don't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    AUDIO_DIR.mkdir(parents=True, exist_ok=True)
    UPLOADS_DIR.mkdir(parents=True, exist_ok=True)
