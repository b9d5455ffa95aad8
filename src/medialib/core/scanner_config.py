"""Configuration for scanner behavior and performance tuning."""

from dataclasses import dataclass


@dataclass
class ScannerConfig:
    """Configuration for the updater's scan loop.

    Attributes:
        max_concurrent_files: Files of one root synced in parallel (default: 1,
            strictly sequential)
        metadata_workers: Thread pool size for parsing and hashing (default: 4)
        checksum_chunk_size: Bytes read per chunk when hashing (default: 64 KiB)
        progress_log_interval: Log a progress line every N files (default: 500)

    Example:
        >>> config = ScannerConfig(max_concurrent_files=4)
        >>> updater = Updater(session_factory, config=config)
    """

    max_concurrent_files: int = 1
    metadata_workers: int = 4
    checksum_chunk_size: int = 64 * 1024
    progress_log_interval: int = 500

    def __post_init__(self):
        """Validate configuration values.

        Raises:
            ValueError: If any configuration value is invalid.
        """
        if self.max_concurrent_files < 1:
            raise ValueError("max_concurrent_files must be >= 1")
        if self.metadata_workers < 1:
            raise ValueError("metadata_workers must be >= 1")
        if self.checksum_chunk_size < 1:
            raise ValueError("checksum_chunk_size must be >= 1")
        if self.progress_log_interval < 1:
            raise ValueError("progress_log_interval must be >= 1")
