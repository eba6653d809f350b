"""Failure classification and bounded retry for ffmpeg attempts."""

import time
from typing import Callable, Optional

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from clipstitch.errors import (
    FatalTranscodeError,
    RetryableTranscodeError,
    TranscodeError,
    TranscodeTimeoutError,
)
from clipstitch.models import Attempt, AttemptOutcome
from clipstitch.utils.logging import get_logger

log = get_logger(__name__)

# Substrings ffmpeg prints when a concat input is listed on a shared mount
# but its data is not yet visible to this host. Matched case-insensitively.
TRANSIENT_DIAGNOSTIC_MARKERS = (
    "impossible to open",
    "invalid data found when processing input",
    "cannot open segment",
    "invalid data found while demuxing",
)


def is_transient_diagnostic(text: str) -> bool:
    """Return True if ffmpeg's diagnostic text points at a storage visibility race."""
    lowered = text.lower()
    return any(marker in lowered for marker in TRANSIENT_DIAGNOSTIC_MARKERS)


def error_from_diagnostic(
    message: str,
    diagnostic: str,
    returncode: Optional[int] = None,
) -> TranscodeError:
    """Build the retryable or fatal error matching a failed run's diagnostic."""
    if is_transient_diagnostic(f"{message}\n{diagnostic}"):
        return RetryableTranscodeError(message, diagnostic, returncode)
    return FatalTranscodeError(message, diagnostic, returncode)


def classify_failure(error: BaseException) -> AttemptOutcome:
    """Map an attempt's exception to its outcome.

    Timeouts are never retried, even though a large job may legitimately
    run past the ceiling.
    """
    if isinstance(error, TranscodeTimeoutError):
        return AttemptOutcome.TIMEOUT
    if isinstance(error, RetryableTranscodeError):
        return AttemptOutcome.RETRYABLE
    if isinstance(error, FatalTranscodeError):
        return AttemptOutcome.FATAL
    if isinstance(error, TranscodeError) and is_transient_diagnostic(str(error)):
        return AttemptOutcome.RETRYABLE
    return AttemptOutcome.FATAL


class RetryCoordinator:
    """Drives sequential attempts until success, a fatal error, or exhaustion.

    Between retryable attempts it sleeps for a fixed delay and then calls
    ``before_retry`` (the pipeline passes its cache prober here).
    """

    DEFAULT_MAX_ATTEMPTS = 3
    RETRY_DELAY_SECONDS = 2.0

    def __init__(
        self,
        retry_delay_seconds: float = RETRY_DELAY_SECONDS,
        before_retry: Optional[Callable[[], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.retry_delay_seconds = retry_delay_seconds
        self.before_retry = before_retry
        self._sleep = sleep

    def run(
        self,
        invoke: Callable[[], None],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> list[Attempt]:
        """Run ``invoke`` up to ``max_attempts`` times.

        Args:
            invoke: One ffmpeg attempt. Returns on success, raises on failure.
            max_attempts: Upper bound on executed attempts.

        Returns:
            Every attempt made, the last one being the success.

        Raises:
            TranscodeError: The fatal/timeout error on first occurrence, or the
                last retryable error once attempts are exhausted.
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

        attempts: list[Attempt] = []

        def attempt_once() -> None:
            number = len(attempts) + 1
            started = time.monotonic()
            try:
                invoke()
            except Exception as e:
                attempts.append(
                    Attempt(number, classify_failure(e), time.monotonic() - started, e)
                )
                raise
            attempts.append(
                Attempt(number, AttemptOutcome.SUCCESS, time.monotonic() - started)
            )

        retryer = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_fixed(self.retry_delay_seconds),
            retry=retry_if_exception(_is_retryable),
            before=self._before_attempt,
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            retryer(attempt_once)
        except Exception as e:
            last = attempts[-1] if attempts else None
            if last is not None and last.outcome is AttemptOutcome.RETRYABLE:
                log.error("concat_attempts_exhausted", attempts=len(attempts), error=str(e))
            else:
                log.error(
                    "concat_attempt_fatal",
                    attempt=len(attempts),
                    outcome=last.outcome.value if last else AttemptOutcome.FATAL.value,
                    error=str(e),
                )
            raise

        if len(attempts) > 1:
            log.info("concat_attempt_recovered", attempt=len(attempts))
        return attempts

    # --- Tenacity hooks ---

    def _before_attempt(self, retry_state: RetryCallState) -> None:
        # Attempt 1 was already probed by the caller
        if retry_state.attempt_number > 1 and self.before_retry is not None:
            self.before_retry()

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        log.warning(
            "concat_attempt_retryable",
            attempt=retry_state.attempt_number,
            retry_in_seconds=self.retry_delay_seconds,
            error=str(error),
        )


def _is_retryable(error: BaseException) -> bool:
    return classify_failure(error) is AttemptOutcome.RETRYABLE
