"""
Configuration management for comicfs.

Handles loading and saving user configuration from:
- XDG config directory: ~/.config/comicfs/config.json
- Fallback: ~/.comicfs/config.json
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .imgconv import DEFAULT_DECODE_EXTENSIONS, DEFAULT_ENCODE_EXTENSIONS

log = logging.getLogger(__name__)


@dataclass
class ContainerConfig:
    """Which file extensions are exposed as archive directories."""
    extensions: List[str] = field(default_factory=lambda: [".zip", ".cbz"])


@dataclass
class ConversionConfig:
    """Image codecs available for name.src.dst lookups."""
    decode: List[str] = field(default_factory=lambda: list(DEFAULT_DECODE_EXTENSIONS))
    encode: List[str] = field(default_factory=lambda: list(DEFAULT_ENCODE_EXTENSIONS))
    jpeg_quality: int = 90


@dataclass
class MountConfig:
    """FUSE mount options."""
    fsname: str = "comicfs"
    allow_other: bool = False
    debug: bool = False


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "info"


@dataclass
class ComicFSConfig:
    """Main comicfs configuration."""
    base_dir: Optional[str] = None
    containers: ContainerConfig = field(default_factory=ContainerConfig)
    conversion: ConversionConfig = field(default_factory=ConversionConfig)
    mount: MountConfig = field(default_factory=MountConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "base_dir": self.base_dir,
            "containers": asdict(self.containers),
            "conversion": asdict(self.conversion),
            "mount": asdict(self.mount),
            "logging": asdict(self.logging),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ComicFSConfig':
        """Create from dictionary."""
        return cls(
            base_dir=data.get("base_dir"),
            containers=ContainerConfig(**data.get("containers", {})),
            conversion=ConversionConfig(**data.get("conversion", {})),
            mount=MountConfig(**data.get("mount", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )


def get_config_path() -> Path:
    """
    Get configuration file path.

    Follows XDG Base Directory specification:
    1. ~/.config/comicfs/config.json
    2. Fallback: ~/.comicfs/config.json

    Returns:
        Path to config file
    """
    xdg_config_home = Path.home() / ".config"
    if xdg_config_home.exists():
        config_dir = xdg_config_home / "comicfs"
    else:
        config_dir = Path.home() / ".comicfs"

    return config_dir / "config.json"


def load_config() -> ComicFSConfig:
    """
    Load configuration from file.

    Returns:
        ComicFSConfig instance with loaded values or defaults
    """
    config_path = get_config_path()

    if not config_path.exists():
        return ComicFSConfig()

    try:
        with open(config_path, 'r') as f:
            data = json.load(f)
        return ComicFSConfig.from_dict(data)
    except (json.JSONDecodeError, OSError, TypeError, AttributeError) as e:
        log.warning(f"Failed to load config from {config_path}: {e}; using defaults")
        return ComicFSConfig()


def save_config(config: ComicFSConfig) -> Path:
    """
    Save configuration to file.

    Args:
        config: Configuration to save

    Returns:
        Path the configuration was written to
    """
    config_path = get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, 'w') as f:
        json.dump(config.to_dict(), f, indent=2)

    log.info(f"Configuration saved to {config_path}")
    return config_path


def ensure_config_exists() -> Path:
    """
    Ensure configuration file exists, creating with defaults if not.

    Returns:
        Path to config file
    """
    config_path = get_config_path()

    if not config_path.exists():
        save_config(ComicFSConfig())

    return config_path


def update_config(
    base_dir: Optional[str] = None,
    container_extensions: Optional[List[str]] = None,
    decode_extensions: Optional[List[str]] = None,
    encode_extensions: Optional[List[str]] = None,
    jpeg_quality: Optional[int] = None,
    mount_fsname: Optional[str] = None,
    mount_allow_other: Optional[bool] = None,
    log_level: Optional[str] = None,
) -> ComicFSConfig:
    """
    Update configuration.

    Only updates provided values, leaving others unchanged.
    """
    config = load_config()

    if base_dir is not None:
        config.base_dir = base_dir
    if container_extensions is not None:
        config.containers.extensions = list(container_extensions)
    if decode_extensions is not None:
        config.conversion.decode = list(decode_extensions)
    if encode_extensions is not None:
        config.conversion.encode = list(encode_extensions)
    if jpeg_quality is not None:
        config.conversion.jpeg_quality = jpeg_quality
    if mount_fsname is not None:
        config.mount.fsname = mount_fsname
    if mount_allow_other is not None:
        config.mount.allow_other = mount_allow_other
    if log_level is not None:
        config.logging.level = log_level

    save_config(config)
    return config
