"""
Logging configuration for the vault strategy engine.

Provides module-based loggers with timestamps and proper formatting.
All logs are written to a single shared log file: vault_engine_log_<datetime>.log
"""
import logging
import logging.handlers
from pathlib import Path
from datetime import datetime
from typing import Optional

# Global shared log file path (created once per session)
_SHARED_LOG_FILE: Optional[Path] = None


def _get_shared_log_file(log_dir: Path = Path("logs")) -> Path:
    """
    Get or create the shared log file path.

    Creates a single log file for all modules with format:
    vault_engine_log_YYYY-MM-DD_HHMMSS.log

    Returns:
        Path to shared log file
    """
    global _SHARED_LOG_FILE

    if _SHARED_LOG_FILE is None:
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime('%Y-%m-%d_%H%M%S')
        _SHARED_LOG_FILE = log_dir / f"vault_engine_log_{timestamp}.log"

    return _SHARED_LOG_FILE


def setup_logger(
    name: str,
    level: int = logging.INFO,
    log_to_console: bool = True,
    log_to_file: bool = True,
) -> logging.Logger:
    """
    Setup a logger with file and optional console handlers.

    Follows format: "YYYY-MM-DD HH:MM:SS | MODULE.NAME | LEVEL | Message"

    Args:
        name: Logger name (e.g., 'RISK.MANAGER', 'STRATEGY.HEDGE', 'ENGINE')
        level: Logging level (logging.DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_console: Whether to also output to console
        log_to_file: Whether to write to the shared rotating log file

    Returns:
        Configured Logger instance

    Example:
        logger = setup_logger('ENGINE', level=logging.DEBUG)
        logger.info("Cycle started")
        # 2026-10-19 14:30:22 | ENGINE | INFO | Cycle started
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid adding duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        '%(asctime)s | %(name)s | %(levelname)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )

    if log_to_file:
        file_handler = logging.handlers.RotatingFileHandler(
            _get_shared_log_file(),
            maxBytes=50 * 1024 * 1024,
            backupCount=10,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if log_to_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def configure_root_logging(level: str = 'INFO', log_to_file: bool = False) -> None:
    """
    Route every engine logger through one root handler set.

    Used by the CLI so that the per-module loggers created with
    logging.getLogger() in the library share one output format.
    """
    setup_logger(
        '',
        level=getattr(logging, level.upper(), logging.INFO),
        log_to_console=True,
        log_to_file=log_to_file,
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get existing logger or create new one with default settings.

    Example:
        logger = get_logger('STRATEGY.REBALANCE')
        logger.debug("drift=120bps")
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        return setup_logger(name)
    return logger


def get_engine_logger() -> logging.Logger:
    """Get logger for orchestrator cycle operations."""
    return logging.getLogger('ENGINE')


def get_risk_logger(component: str = 'MANAGER') -> logging.Logger:
    """Get logger for risk operations."""
    return logging.getLogger(f'RISK.{component.upper()}')


def get_strategy_logger(component: str) -> logging.Logger:
    """Get logger for strategy components."""
    return logging.getLogger(f'STRATEGY.{component.upper()}')
