"""
Upload Configuration — Validated settings for item factories.

Reads optional overrides from environment variables:
    UPLOAD_SIZE_THRESHOLD = <plaintext bytes kept in memory>
    UPLOAD_REPOSITORY = <directory for temp files>
    UPLOAD_DEFAULT_CHARSET = <charset name>
    UPLOAD_KEY_SIZE = <128 | 192 | 256>

Security Note:
    Keys are never configured; every item generates its own.
"""
import os
import codecs
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .crypto import KEY_SIZES, probe_key_size

logger = logging.getLogger("encrypted_upload")

DEFAULT_SIZE_THRESHOLD = 10240


class UploadConfig(BaseModel):
    """Validated upload configuration."""

    size_threshold: int = Field(default=DEFAULT_SIZE_THRESHOLD, ge=0)
    repository: Optional[Path] = None
    default_charset: Optional[str] = None
    key_size: Optional[int] = None

    @field_validator("repository")
    @classmethod
    def validate_repository(cls, v: Optional[Path]) -> Optional[Path]:
        """Ensure the repository is an existing directory."""
        if v is not None and not v.is_dir():
            raise ValueError(f"Repository is not a directory: {v}")
        return v

    @field_validator("default_charset")
    @classmethod
    def validate_charset(cls, v: Optional[str]) -> Optional[str]:
        """Ensure the charset names a known codec."""
        if v is not None:
            try:
                codecs.lookup(v)
            except LookupError:
                raise ValueError(f"Unknown charset: {v}") from None
        return v

    @field_validator("key_size")
    @classmethod
    def validate_key_size(cls, v: Optional[int]) -> Optional[int]:
        """Validate key size is a supported AES size."""
        if v is not None and v not in KEY_SIZES:
            raise ValueError(f"Unsupported key size: {v}")
        return v

    def resolved_key_size(self) -> int:
        """Return the configured key size, probing the platform when unset."""
        if self.key_size is not None:
            return self.key_size
        bits = probe_key_size()
        logger.debug("Probed AES key size: %d bits", bits)
        return bits

    @classmethod
    def from_env(cls) -> "UploadConfig":
        """Create UploadConfig by loading values from environment.

        Returns:
            Populated UploadConfig instance.
        """
        values = {}
        threshold = os.environ.get("UPLOAD_SIZE_THRESHOLD")
        if threshold is not None:
            values["size_threshold"] = int(threshold)
        repository = os.environ.get("UPLOAD_REPOSITORY")
        if repository:
            values["repository"] = Path(repository)
        charset = os.environ.get("UPLOAD_DEFAULT_CHARSET")
        if charset:
            values["default_charset"] = charset
        key_size = os.environ.get("UPLOAD_KEY_SIZE")
        if key_size is not None:
            values["key_size"] = int(key_size)
        return cls(**values)
