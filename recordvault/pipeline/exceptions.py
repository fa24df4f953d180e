from recordvault.pipeline.models import PipelineState, Stage

_RETRYABLE_STAGES = frozenset({Stage.ENCRYPT, Stage.STORE})


class PipelineError(Exception):
    """Structured failure returned by the caller-facing API.

    Carries the stage that failed, the underlying cause, the state trail the
    invocation went through, and whether resubmitting is safe. Raw
    infrastructure errors are only ever reachable through ``cause``.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: Stage,
        cause: BaseException | None = None,
        trail: tuple[PipelineState, ...] = (),
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.stage = stage
        self.cause = cause
        self.trail = tuple(trail)
        self.retryable = stage in _RETRYABLE_STAGES if retryable is None else retryable

    @property
    def touched_external_systems(self) -> bool:
        return PipelineState.STORED in self.trail

    def to_report(self) -> dict[str, object]:
        """JSON-ready failure report for operators and the HTTP layer."""
        return {
            "error": type(self).__name__,
            "stage": self.stage.value,
            "message": str(self),
            "cause": f"{type(self.cause).__name__}: {self.cause}" if self.cause else None,
            "retryable": self.retryable,
            "touched_external_systems": self.touched_external_systems,
            "trail": [state.value for state in self.trail],
        }


class ValidationError(PipelineError):
    """Bad input or unconsented subject, rejected before any external call."""


class RecordNotFoundError(PipelineError):
    """No descriptor exists for the requested record."""


class TransientInfraError(PipelineError):
    """Network or service unavailability that outlived the retry budget."""


class DeadlineExceededError(TransientInfraError):
    """The invocation deadline elapsed before the stage could finish."""


class FatalInfraError(PipelineError):
    """Credential rejection, exhausted resources, or a reverted ledger write."""


class IntegrityFailure(PipelineError):
    """Stored ciphertext is missing or does not decrypt to the recorded file."""


class PartialCommitError(PipelineError):
    """A stage failed and its compensation failed too.

    Keeps the stage and cause of the original failure; the orphaned resource
    needs manual reconciliation.
    """

    def __init__(
        self,
        message: str,
        *,
        failure: PipelineError,
        compensation_cause: BaseException,
    ) -> None:
        super().__init__(
            message,
            stage=failure.stage,
            cause=failure.cause,
            trail=failure.trail,
            retryable=False,
        )
        self.failure = failure
        self.compensation_cause = compensation_cause

    def to_report(self) -> dict[str, object]:
        report = super().to_report()
        report["original_error"] = type(self.failure).__name__
        report["compensation_cause"] = (
            f"{type(self.compensation_cause).__name__}: {self.compensation_cause}"
        )
        return report
