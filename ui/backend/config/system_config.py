"""
System configuration for the image classifier backend.
Contains server, CORS and logging settings.
"""

import os
from dataclasses import dataclass, field


@dataclass
class APIConfig:
    """API-related configuration settings."""
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list = field(default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"])
    max_image_size_mb: int = 10
    log_level: str = "info"

    @classmethod
    def from_env(cls) -> 'APIConfig':
        """Create API config from environment variables."""
        cors_origins = os.getenv('API_CORS_ORIGINS', ','.join(cls().cors_origins)).split(',')
        return cls(
            host=os.getenv('API_HOST', cls.host),
            port=int(os.getenv('API_PORT', cls.port)),
            cors_origins=[origin.strip() for origin in cors_origins if origin.strip()],
            max_image_size_mb=int(os.getenv('API_MAX_IMAGE_SIZE_MB', cls.max_image_size_mb)),
            log_level=os.getenv('API_LOG_LEVEL', cls.log_level),
        )

    @property
    def max_payload_chars(self) -> int:
        """Largest accepted base64 payload, in characters."""
        return self.max_image_size_mb * 1024 * 1024 * 4 // 3 + 4


@dataclass
class SystemConfig:
    """Main system configuration container."""
    api: APIConfig = field(default_factory=APIConfig)

    @classmethod
    def from_env(cls) -> 'SystemConfig':
        """Create system config from environment variables."""
        return cls(api=APIConfig.from_env())


# Global configuration instance
config = SystemConfig.from_env()
