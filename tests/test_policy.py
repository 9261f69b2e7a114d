from glossa.errors import (
    BatchTranslationFailure,
    ErrorCategory,
    ExtractionFailure,
    InvalidCredentialError,
    MatchFailure,
    MissingCredentialError,
    SessionActiveError,
    TranslationProviderError,
)
from glossa.policy import FailureLog, describe_failure, summarise_report
from glossa.structures import PageReport


def _report(failed: int, total: int) -> PageReport:
    return PageReport(
        title="Page",
        matched_blocks=4,
        applied_blocks=4,
        failed_batches=failed,
        total_batches=total,
        target_language="German",
        cefr_level="B1",
        elapsed_seconds=1.0,
    )


def test_known_failures_get_specific_notices() -> None:
    assert describe_failure(SessionActiveError("Page already translated")).kind == "info"
    assert describe_failure(ExtractionFailure("x")).title == "No content found"
    assert describe_failure(MatchFailure("x")).title == "Could not match content"

    missing = describe_failure(MissingCredentialError("Missing OpenAI API key."))
    assert missing.show_settings
    invalid = describe_failure(InvalidCredentialError("Invalid API key (401)"))
    assert invalid.hint == "Your API key may be invalid."


def test_provider_messages_are_classified_by_content() -> None:
    rate = describe_failure(TranslationProviderError("API error: 429 - slow down"))
    assert rate.hint == "Rate limited. Wait a moment and try again."
    assert not rate.show_settings

    generic = describe_failure(BatchTranslationFailure("Batch 1/1 timed out", batch_id=1))
    assert generic.hint == "Please try again later."


def test_failure_log_keeps_messages_in_order() -> None:
    log = FailureLog()
    log.record(ErrorCategory.TRANSLATION, "Batch 1/2 failed - boom")
    log.record(ErrorCategory.TRANSLATION, "Batch 2/2 failed - bang", details="trace")

    assert log.messages == ["Batch 1/2 failed - boom", "Batch 2/2 failed - bang"]
    assert log.records[1].details == "trace"


def test_report_summary_mentions_failed_batches() -> None:
    assert summarise_report(_report(0, 2)).title == "Translated 4 paragraphs"

    warning = summarise_report(_report(1, 2))
    assert warning.kind == "warning"
    assert warning.title == (
        "Translated 4 paragraphs (1/2 batches failed - some text unchanged)"
    )
