"""Base task classes with retry logic for Celery."""

import math

from celery import Task

from streamforge.core.config import settings


class RetryConfig:
    """Configuration for retry behavior with exponential backoff."""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 300.0,
        backoff_multiplier: float = 2.0,
    ):
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_multiplier = backoff_multiplier

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt using exponential backoff.

        Args:
            attempt: The current attempt number (1-indexed).

        Returns:
            The delay in seconds, capped at max_delay.
        """
        if attempt < 1:
            return self.initial_delay

        delay = self.initial_delay * math.pow(self.backoff_multiplier, attempt - 1)
        return min(delay, self.max_delay)

    def should_retry(self, attempt: int) -> bool:
        """Check whether another attempt is allowed after ``attempt`` failed."""
        return attempt < self.max_attempts


# Whole-job retries for transcoding. One attempt unless TRANSCODE_MAX_RETRIES
# is raised, so a failed video stays in ``error``.
RETRY_CONFIGS = {
    "transcode": RetryConfig(
        max_attempts=1 + settings.TRANSCODE_MAX_RETRIES,
        initial_delay=30.0,
        max_delay=600.0,
        backoff_multiplier=2.0,
    ),
    "default": RetryConfig(max_attempts=3, initial_delay=1.0, max_delay=60.0, backoff_multiplier=2),
}


class BaseTaskWithRetry(Task):
    """Base Celery task with exponential backoff retry logic."""

    abstract = True
    retry_config_name: str = "default"

    @property
    def retry_config(self) -> RetryConfig:
        """Get the retry configuration for this task."""
        return RETRY_CONFIGS.get(self.retry_config_name, RETRY_CONFIGS["default"])

    def retry_with_backoff(self, exc: Exception, attempt: int) -> None:
        """Retry the task with exponential backoff, or re-raise ``exc``.

        Args:
            exc: The exception that caused the failure.
            attempt: The current attempt number (1-indexed).

        Raises:
            celery.exceptions.Retry: if another attempt is scheduled
            Exception: ``exc`` itself once max attempts are reached
        """
        config = self.retry_config

        if not config.should_retry(attempt):
            raise exc

        delay = config.calculate_delay(attempt)
        raise self.retry(exc=exc, countdown=delay, max_retries=config.max_attempts - 1)
