"""
API configuration module.

Provides configuration for the TUS upload client and manager.
Values can be built in code or read from TUSUPLOAD_* environment variables.
"""
import os
import ssl
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

DEFAULT_BASE_URL = 'http://localhost:3000/api/v1'
DEFAULT_CHUNK_SIZE = 1024 * 1024
ENV_PREFIX = 'TUSUPLOAD_'


@dataclass
class ProxyConfig:
    """
    Proxy configuration.

    Supports HTTP and HTTPS proxies.
    """
    url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    def to_aiohttp_proxy(self) -> Optional[str]:
        """Convert to aiohttp proxy format."""
        if not self.url:
            return None

        if self.username and self.password and '://' in self.url:
            protocol, rest = self.url.split('://', 1)
            return f"{protocol}://{self.username}:{self.password}@{rest}"

        return self.url


@dataclass
class SSLConfig:
    """SSL/TLS configuration."""
    verify: bool = True
    ca_file: Optional[str] = None
    check_hostname: bool = True

    def create_ssl_context(self):
        """Create SSL context, or False to disable verification."""
        if not self.verify:
            return False

        context = ssl.create_default_context()
        if self.ca_file:
            context.load_verify_locations(self.ca_file)
        context.check_hostname = self.check_hostname
        return context


@dataclass
class TimeoutConfig:
    """
    Timeout configuration.

    A chunk PATCH of 1 MiB on a slow link can take a while, so the
    total timeout is generous.
    """
    total: float = 300.0
    connect: float = 30.0
    sock_read: float = 120.0

    def to_aiohttp_timeout(self):
        """Convert to aiohttp ClientTimeout."""
        import aiohttp
        return aiohttp.ClientTimeout(
            total=self.total,
            connect=self.connect,
            sock_read=self.sock_read
        )


@dataclass
class RetryConfig:
    """
    Retry configuration for chunk uploads.

    Attempts are counted including the first one.
    """
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def create_strategy(self):
        """Create the backoff strategy for these settings."""
        from .retry import ExponentialBackoffStrategy
        return ExponentialBackoffStrategy(
            base_delay=self.base_delay,
            max_delay=self.max_delay
        )


@dataclass
class UploadLimits:
    """Client-side limits mirrored from the server."""
    project_max_file_size: int = 500 * 1024 * 1024
    modul_max_file_size: int = 50 * 1024 * 1024
    max_batch_size: int = 5

    def max_file_size(self, resource_type: str) -> int:
        """Max file size for 'project' or 'modul'."""
        if str(resource_type) == 'modul':
            return self.modul_max_file_size
        return self.project_max_file_size


@dataclass
class APIConfig:
    """
    Complete client configuration.

    Centralizes all configuration options for the TUS upload client.
    """
    base_url: str = DEFAULT_BASE_URL
    chunk_size: int = DEFAULT_CHUNK_SIZE
    tus_version: str = '1.0.0'
    user_agent: str = 'tusupload/1.0.0'

    # Slot negotiation
    queue_reset_delay: float = 1.0
    slot_poll_timeout: float = 30.0
    slot_poll_interval: float = 1.0

    proxy: Optional[ProxyConfig] = None
    ssl: SSLConfig = field(default_factory=SSLConfig)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    limits: UploadLimits = field(default_factory=UploadLimits)

    extra_headers: Dict[str, str] = field(default_factory=dict)

    # Connection pool settings
    limit_per_host: int = 10
    limit: int = 100

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError("Chunk size must be positive")
        if self.retry.max_retries < 1:
            raise ValueError("max_retries must be at least 1")

    @property
    def max_retries(self) -> int:
        return self.retry.max_retries

    @classmethod
    def default(cls) -> 'APIConfig':
        """Create default configuration."""
        return cls()

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **kwargs
    ) -> 'APIConfig':
        """
        Create configuration from TUSUPLOAD_* environment variables.

        Recognized variables: BASE_URL, CHUNK_SIZE, MAX_RETRIES,
        PROJECT_MAX_FILE_SIZE, MODUL_MAX_FILE_SIZE. Missing variables
        keep their defaults.

        Raises:
            ValueError: If a numeric variable is not a valid number
        """
        env = os.environ if environ is None else environ

        def number(name: str, default: int) -> int:
            key = f"{ENV_PREFIX}{name}"
            value = env.get(key)
            if value is None or value == '':
                return default
            try:
                return int(value)
            except ValueError:
                raise ValueError(f"Environment variable {key} is not a valid number") from None

        limits = UploadLimits(
            project_max_file_size=number('PROJECT_MAX_FILE_SIZE', UploadLimits.project_max_file_size),
            modul_max_file_size=number('MODUL_MAX_FILE_SIZE', UploadLimits.modul_max_file_size),
        )
        retry = RetryConfig(max_retries=number('MAX_RETRIES', RetryConfig.max_retries))

        options: Dict[str, Any] = {
            'base_url': env.get(f"{ENV_PREFIX}BASE_URL") or DEFAULT_BASE_URL,
            'chunk_size': number('CHUNK_SIZE', DEFAULT_CHUNK_SIZE),
            'retry': retry,
            'limits': limits,
        }
        options.update(kwargs)
        return cls(**options)

    @classmethod
    def with_proxy(cls, proxy_url: str, **kwargs) -> 'APIConfig':
        """Create configuration with proxy."""
        return cls(proxy=ProxyConfig(url=proxy_url), **kwargs)

    @classmethod
    def insecure(cls, **kwargs) -> 'APIConfig':
        """Create configuration with SSL verification disabled."""
        return cls(ssl=SSLConfig(verify=False, check_hostname=False), **kwargs)

    def get_connector_kwargs(self) -> Dict[str, Any]:
        """Get kwargs for aiohttp TCPConnector."""
        return {
            'limit': self.limit,
            'limit_per_host': self.limit_per_host,
            'ssl': self.ssl.create_ssl_context(),
        }

    def get_session_kwargs(self) -> Dict[str, Any]:
        """Get kwargs for aiohttp ClientSession."""
        headers = {
            'User-Agent': self.user_agent,
            **self.extra_headers
        }

        return {
            'headers': headers,
            'timeout': self.timeout.to_aiohttp_timeout(),
        }
