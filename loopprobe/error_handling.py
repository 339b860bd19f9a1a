"""
Error handling and reporting for loopprobe.

Analysis conditions that the pipeline represents as explicit empty or optional
state (empty procedures, unreachable blocks, dangling jumps, duplicate loop
addresses) never reach this module. Only contract violations by collaborators
and failures of the capstone/unicorn engines are raised as errors.
"""

import functools
import sys
import traceback
import logging
from enum import Enum
from typing import Optional, Dict, Any
from dataclasses import dataclass


class ErrorSeverity(Enum):
    """Error severity levels."""
    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"


class ErrorCategory(Enum):
    """Categories of errors that can occur."""
    INPUT_ERROR = "Input Error"
    ANALYSIS_ERROR = "Analysis Error"
    DISASSEMBLY_ERROR = "Disassembly Error"
    EMULATION_ERROR = "Emulation Error"
    CONFIGURATION_ERROR = "Configuration Error"
    INTERNAL_ERROR = "Internal Error"


@dataclass
class ErrorContext:
    """Context information for an error."""
    procedure: Optional[str] = None
    function: Optional[str] = None
    address: Optional[int] = None
    block_id: Optional[int] = None
    additional_info: Optional[Dict[str, Any]] = None


class LoopProbeError(Exception):
    """Base exception class for loopprobe errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INTERNAL_ERROR,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[ErrorContext] = None,
        suggestion: Optional[str] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.suggestion = suggestion
        self.original_exception = original_exception

    def __str__(self):
        """Format error message with all context."""
        lines = [
            f"{self.severity.value}: {self.category.value}",
            f"Message: {self.message}",
        ]

        if self.context.procedure:
            lines.append(f"Procedure: {self.context.procedure}")
        if self.context.function:
            lines.append(f"Function: {self.context.function}")
        if self.context.address is not None:
            lines.append(f"Address: {self.context.address:#x}")
        if self.context.block_id is not None:
            lines.append(f"Block: {self.context.block_id}")
        if self.context.additional_info:
            lines.append("Additional Information:")
            for key, value in self.context.additional_info.items():
                lines.append(f"  {key}: {value}")

        if self.suggestion:
            lines.append(f"Suggestion: {self.suggestion}")

        if self.original_exception:
            lines.append(f"Original Exception: {type(self.original_exception).__name__}")
            lines.append(f"  {str(self.original_exception)}")

        return "\n".join(lines)


class InputError(LoopProbeError):
    """Instruction stream violates the input contract."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.INPUT_ERROR,
            **kwargs
        )


class AnalysisError(LoopProbeError):
    """A pipeline stage was invoked on a graph it cannot consume."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.ANALYSIS_ERROR,
            **kwargs
        )


class DisassemblyError(LoopProbeError):
    """Capstone could not produce an instruction stream."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.DISASSEMBLY_ERROR,
            **kwargs
        )


class EmulationError(LoopProbeError):
    """Error while running a procedure under unicorn."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.EMULATION_ERROR,
            **kwargs
        )


class ConfigurationError(LoopProbeError):
    """Error related to command line configuration."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION_ERROR,
            **kwargs
        )


class ErrorHandler:
    """Central error handler for loopprobe."""

    def __init__(self, debug_mode: bool = False):
        self.debug_mode = debug_mode
        self.logger = self._setup_logger()

    def _setup_logger(self) -> logging.Logger:
        """Set up logging configuration for the package logger."""
        logger = logging.getLogger("loopprobe")
        logger.setLevel(logging.DEBUG if self.debug_mode else logging.INFO)

        if not logger.handlers:
            console_handler = logging.StreamHandler(sys.stderr)
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)

        for handler in logger.handlers:
            handler.setLevel(logging.DEBUG if self.debug_mode else logging.INFO)

        return logger

    def handle_error(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None,
        reraise: bool = False
    ):
        """
        Handle an error with appropriate logging and reporting.

        Args:
            error: The exception to handle
            context: Additional context information
            reraise: Whether to re-raise the exception after handling
        """
        if isinstance(error, LoopProbeError):
            self._log_error(error)
        else:
            wrapped = LoopProbeError(
                message=str(error),
                context=context,
                original_exception=error
            )
            self._log_error(wrapped)

        if self.debug_mode:
            traceback.print_exc()

        if reraise:
            raise error

    def _log_error(self, error: LoopProbeError):
        """Log a loopprobe error with the level matching its severity."""
        error_message = str(error)

        if error.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(error_message)
        elif error.severity == ErrorSeverity.ERROR:
            self.logger.error(error_message)
        elif error.severity == ErrorSeverity.WARNING:
            self.logger.warning(error_message)
        else:
            self.logger.info(error_message)


_error_handler: Optional[ErrorHandler] = None


def get_error_handler(debug_mode: Optional[bool] = None) -> ErrorHandler:
    """
    Get or create the process-wide error handler used by the CLI.

    Passing debug_mode reconfigures the handler; None keeps the current one.
    """
    global _error_handler
    if _error_handler is None:
        _error_handler = ErrorHandler(debug_mode=bool(debug_mode))
    elif debug_mode is not None and _error_handler.debug_mode != debug_mode:
        _error_handler = ErrorHandler(debug_mode=debug_mode)
    return _error_handler


def handle_gracefully(func):
    """
    Decorator for graceful error handling at the CLI boundary.

    loopprobe errors are logged and turned into exit status 1. Anything else
    is logged with the calling context and also yields 1.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LoopProbeError as e:
            get_error_handler().handle_error(e)
            return 1
        except Exception as e:
            context = ErrorContext(
                function=func.__name__,
                additional_info={"args": str(args), "kwargs": str(kwargs)}
            )
            get_error_handler().handle_error(e, context=context)
            return 1

    return wrapper


ERROR_MESSAGES = {
    "address_order": {
        "message": "Instruction address {address:#x} does not follow {previous:#x}",
        "suggestion": "Instructions of a procedure must be supplied in strictly increasing address order."
    },
    "missing_target": {
        "message": "Direct branch or call at {address:#x} has no target address",
        "suggestion": "Set direct_target for every instruction flagged is_direct_branch_or_call."
    },
    "unexpected_target": {
        "message": "Instruction at {address:#x} has a target but is not a direct branch or call",
        "suggestion": "Only direct branches and calls carry a direct_target."
    },
    "dominators_missing": {
        "message": "Loop identification needs dominator sets; block {block_id} has none",
        "suggestion": "Run DominatorSolver.solve() on the graph first."
    },
    "unsupported_architecture": {
        "message": "Unsupported architecture: {arch}",
        "suggestion": "Use --arch with one of x86, x86_64, arm, arm64, mips, mips64."
    },
}


def create_error(
    error_key: str,
    error_class: type = LoopProbeError,
    severity: ErrorSeverity = ErrorSeverity.ERROR,
    context: Optional[ErrorContext] = None,
    **format_args
) -> LoopProbeError:
    """
    Create an error from a predefined message.

    Args:
        error_key: Key in ERROR_MESSAGES dictionary
        error_class: LoopProbeError subclass to instantiate
        severity: Error severity level
        context: Error context
        **format_args: Arguments to format the error message

    Returns:
        Configured error instance
    """
    if error_key not in ERROR_MESSAGES:
        return LoopProbeError(
            message=f"Unknown error: {error_key}",
            severity=severity,
            context=context
        )

    error_info = ERROR_MESSAGES[error_key]
    message = error_info["message"].format(**format_args)
    suggestion = error_info.get("suggestion")

    if error_class is LoopProbeError:
        return LoopProbeError(
            message=message,
            severity=severity,
            context=context,
            suggestion=suggestion
        )
    return error_class(
        message,
        severity=severity,
        context=context,
        suggestion=suggestion
    )
