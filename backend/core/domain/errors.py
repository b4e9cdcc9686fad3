"""
Swing Analysis Errors

Exceptions raised by the analysis pipeline.

A request to retake the video is NOT an error: it is returned as a
regular result (see AnalysisOutcome.needs_retake). Only hard failures
that stop an attempt are represented here.
"""


class SwingAnalysisError(Exception):
    """Base class for all swing analysis errors."""

    retryable: bool = False


class PoseDetectionFailure(SwingAnalysisError):
    """
    The pose detection model failed to initialize or errored mid-stream.

    Fatal to the current attempt, but the caller may re-run the analysis
    on the same video without recording a new one.
    """

    retryable = True


class PersistenceFailure(SwingAnalysisError):
    """
    The storage collaborator could not save a finished analysis.

    Results are still valid; saving can be retried without re-analysis.
    """

    retryable = True


class InvalidMetricSpec(SwingAnalysisError, ValueError):
    """A metric specification is malformed or self-contradictory."""


class AnalysisCancelled(SwingAnalysisError):
    """The caller cancelled the attempt; partial results are discarded."""


class InvalidStateTransition(SwingAnalysisError, RuntimeError):
    """An analysis attempt was moved along an edge its lifecycle does not allow."""
