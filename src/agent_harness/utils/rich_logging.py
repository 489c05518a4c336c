"""Rich logging with run/tier context and colour formatting."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..core.tiers import tier_ordinal

PACKAGE_LOGGER = "agent_harness"


class HarnessLogFormatter(logging.Formatter):
    """Custom formatter with run and tier context."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[35m",   # Magenta
    }

    def __init__(self, run_id: str, use_colors: bool = True):
        super().__init__()
        self.run_id = run_id
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        tier_context = ""
        if hasattr(record, "tier"):
            tier_context = f"[tier:{record.tier}] "

        provider_context = ""
        if hasattr(record, "provider"):
            provider_context = f"[{record.provider}] "

        if self.use_colors:
            level_color = self.LEVEL_COLORS.get(record.levelname, "")
            reset = "\033[0m"
        else:
            level_color = ""
            reset = ""

        return (
            f"{timestamp} {level_color}{record.levelname:8s}{reset} "
            f"[{self.run_id}] {tier_context}{provider_context}{record.getMessage()}"
        )


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that stamps the current tier/provider on every record."""

    def __init__(self, logger: logging.Logger, run_id: str):
        super().__init__(logger, {})
        self.run_id = run_id
        self.current_tier: Optional[str] = None
        self.current_provider: Optional[str] = None

    def set_context(self, tier: Optional[str] = None, provider: Optional[str] = None):
        if tier:
            self.current_tier = str(tier)
        if provider:
            self.current_provider = provider

    def clear_context(self):
        self.current_tier = None
        self.current_provider = None

    def process(self, msg, kwargs):
        extra = kwargs.get("extra", {})
        if self.current_tier:
            extra["tier"] = self.current_tier
        if self.current_provider:
            extra["provider"] = self.current_provider
        kwargs["extra"] = extra
        return msg, kwargs

    def tier_changed(self, change) -> None:
        """Log a TierChange; usable directly as a manager history_sink."""
        self.set_context(tier=change.to_tier)
        arrow = "⬆️" if tier_ordinal(change.to_tier) > tier_ordinal(change.from_tier) else "⬇️"
        self.info(f"{arrow}  Tier {change.from_tier} → {change.to_tier} ({change.reason})")

    def model_selected(self, provider: str, model: str, tier: str):
        self.set_context(tier=tier, provider=provider)
        self.info(f"💡 Using tier {tier} ({provider}/{model})")


def setup_rich_logging(
    run_id: str,
    log_level: str = "INFO",
    log_dir: Optional[Path] = None,
) -> ContextLogger:
    """Route harness logs through HarnessLogFormatter.

    Handlers go on the package logger, so the module loggers of the
    registry and the manager share them with the returned run logger.

    Args:
        run_id: Identifier stamped on every line (one per CLI invocation or run)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_dir: When given, also write log_dir/<run_id>.log without colours

    Returns:
        ContextLogger for the run
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(getattr(logging, log_level.upper()))

    # Close existing handlers before clearing (prevents file descriptor leak)
    for handler in package_logger.handlers[:]:
        handler.close()
        package_logger.removeHandler(handler)

    # Console output only for interactive terminals; piped CLI output stays clean
    interactive = sys.stderr.isatty() if hasattr(sys.stderr, "isatty") else False
    if interactive:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(HarnessLogFormatter(run_id, use_colors=True))
        package_logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / f"{run_id}.log", encoding="utf-8")
        file_handler.setFormatter(HarnessLogFormatter(run_id, use_colors=False))
        package_logger.addHandler(file_handler)

    return ContextLogger(logging.getLogger(f"{PACKAGE_LOGGER}.run"), run_id)
