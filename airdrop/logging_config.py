"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Logging configuration for Merkle Airdrop.

structlog over the standard logging module. Events render as JSON lines for
log files and collectors, or as coloured console text at a terminal. A
correlation id bound to the current context follows one claim or pool
operation through the assembler, the runtime and the programs.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import structlog
from structlog.types import EventDict


# Bound per claim or pool operation
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def add_correlation_id(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """structlog processor: copy the bound correlation id into the event."""
    correlation_id = correlation_id_var.get()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Bind a correlation id (a fresh uuid4 when none is given) and return it."""
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    correlation_id_var.set(correlation_id)
    return correlation_id


def clear_correlation_id() -> None:
    """Unbind the correlation id."""
    correlation_id_var.set(None)


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID from context."""
    return correlation_id_var.get()


@contextmanager
def correlation_context(correlation_id: Optional[str] = None) -> Iterator[str]:
    """
    Bind a correlation id for the duration of one operation.

    An id already bound by the caller is kept, so a CLI command or an outer
    claim run groups every nested event under one id.

    Yields:
        The bound correlation id
    """
    current = correlation_id_var.get()
    if current is not None and correlation_id is None:
        yield current
        return
    token = correlation_id_var.set(correlation_id or str(uuid.uuid4()))
    try:
        yield correlation_id_var.get()
    finally:
        correlation_id_var.reset(token)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    json_format: bool = True,
) -> None:
    """
    Configure structured logging for Merkle Airdrop.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to log file. If None, logs only to stderr.
        json_format: If True, use JSON format. If False, use human-readable format.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Reconfiguring replaces handlers
    root_logger.handlers.clear()

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(file_handler)
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(numeric_level)
        stderr_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(stderr_handler)

    processors: list = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_correlation_id,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance for a specific module.

    Args:
        name: Logger name (typically __name__ of the module).

    Returns:
        Structured logger instance.
    """
    if name.startswith("airdrop"):
        return structlog.get_logger(name)
    return structlog.get_logger(f"airdrop.{name}")


# Convenience functions for common logging patterns

def log_merkle_root_computation(
    logger: structlog.stdlib.BoundLogger,
    phase: int,
    leaf_count: int,
    merkle_root: str,
    duration_ms: float,
    **kwargs: Any,
) -> None:
    """
    Log a Merkle root computation.

    Args:
        logger: Logger instance
        phase: Phase the tree commits
        leaf_count: Number of leaves in the tree
        merkle_root: Computed Merkle root (hex encoded)
        duration_ms: Computation duration in milliseconds
        **kwargs: Additional context to log
    """
    log_data: Dict[str, Any] = {
        "event_type": "merkle_root_computation",
        "phase": phase,
        "leaf_count": leaf_count,
        "merkle_root": merkle_root,
        "duration_ms": duration_ms,
    }

    log_data.update(kwargs)

    logger.info("merkle_root_computation", **log_data)


def log_claim_attempt(
    logger: structlog.stdlib.BoundLogger,
    phase: int,
    recipient: str,
    amount: int,
    success: bool,
    error_kind: Optional[str] = None,
    **kwargs: Any,
) -> None:
    """
    Log the outcome of a claim transition.

    Args:
        logger: Logger instance
        phase: Phase being claimed
        recipient: Recipient address (base58)
        amount: Claimed amount in smallest units
        success: Whether the claim committed
        error_kind: Error kind if the claim was rejected
        **kwargs: Additional context to log
    """
    log_data: Dict[str, Any] = {
        "event_type": "claim_attempt",
        "phase": phase,
        "recipient": recipient,
        "amount": amount,
        "success": success,
    }

    if error_kind is not None:
        log_data["error_kind"] = error_kind

    log_data.update(kwargs)

    if success:
        logger.info("claim_committed", **log_data)
    else:
        logger.warning("claim_rejected", **log_data)


def log_pool_operation(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    phase: int,
    token_mint: str,
    **kwargs: Any,
) -> None:
    """
    Log an administrator pool operation.

    Args:
        logger: Logger instance
        operation: Operation name (create, update_root, deposit, withdraw)
        phase: Pool phase
        token_mint: Token mint address (base58)
        **kwargs: Additional context to log
    """
    log_data: Dict[str, Any] = {
        "event_type": "pool_operation",
        "operation": operation,
        "phase": phase,
        "token_mint": token_mint,
    }

    log_data.update(kwargs)

    logger.info("pool_operation", **log_data)
