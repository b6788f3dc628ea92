"""
Tests for the oracle client: parsing, validation and retry behaviour.
"""
import pytest

from finextract.config import OracleConfig
from finextract.engine.oracle import GeminiOracle, OracleClient, RetryPolicy, strip_code_fences
from finextract.engine.stages import DetectionPayload
from finextract.exceptions import (
    EvidenceError,
    OracleConfigurationError,
    OracleError,
    OracleResponseError,
    OracleSchemaError,
    StageFailedError,
)


class TestStripCodeFences:
    """Tests for markdown fence removal."""

    def test_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_plain_fence(self):
        assert strip_code_fences('```\n[1, 2]\n```') == "[1, 2]"

    def test_no_fence(self):
        assert strip_code_fences('  {"a": 1} ') == '{"a": 1}'


class TestRetryPolicy:
    """Tests for backoff delays."""

    def test_exponential_delays(self):
        policy = RetryPolicy(max_attempts=4, base_delay=1.0)

        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]


class TestSingleAttempt:
    """Tests for OracleClient.attempt classification."""

    def test_valid_fenced_response(self, fake_oracle, oracle_client, detection_ok):
        fake_oracle.queue('```json\n{"hasTable": true, "tableType": "income_statement", "confidence": "high"}\n```')

        outcome = oracle_client.attempt("detect", ["img"], DetectionPayload, "DETECTION")

        assert outcome.ok
        assert outcome.payload.has_table is True
        assert outcome.raw == detection_ok

    def test_invalid_json(self, fake_oracle, oracle_client):
        fake_oracle.queue("I could not find a table")

        outcome = oracle_client.attempt("detect", [], DetectionPayload, "DETECTION")

        assert not outcome.ok
        assert isinstance(outcome.error, OracleResponseError)
        assert outcome.raw == "I could not find a table"

    def test_schema_mismatch(self, fake_oracle, oracle_client):
        fake_oracle.queue({"hasTable": "maybe", "tableType": "invoice"})

        outcome = oracle_client.attempt("detect", [], DetectionPayload, "DETECTION")

        assert isinstance(outcome.error, OracleSchemaError)
        assert outcome.raw == {"hasTable": "maybe", "tableType": "invoice"}
        assert outcome.error.details["errors"]

    def test_transport_failure(self, fake_oracle, oracle_client):
        fake_oracle.queue(ConnectionError("network down"))

        outcome = oracle_client.attempt("detect", [], DetectionPayload, "DETECTION")

        assert isinstance(outcome.error, OracleError)
        assert "network down" in outcome.error.message

    def test_validator_failure(self, fake_oracle, oracle_client, detection_ok):
        fake_oracle.queue(detection_ok)

        def reject(payload):
            raise EvidenceError("no evidence")

        outcome = oracle_client.attempt("detect", [], DetectionPayload, "DETECTION", validator=reject)

        assert isinstance(outcome.error, EvidenceError)
        assert outcome.raw == detection_ok


class TestRetries:
    """Tests for OracleClient.call retry loop."""

    def test_success_after_retry(self, fake_oracle, oracle_client, sleep_recorder, detection_ok):
        fake_oracle.queue("not json", detection_ok)

        payload = oracle_client.call("detect", [], DetectionPayload, "DETECTION", policy=RetryPolicy(2))

        assert payload.table_type == "income_statement"
        assert fake_oracle.call_count == 2
        assert sleep_recorder.delays == [1.0]

    def test_exhaustion_raises_labelled_error(self, fake_oracle, oracle_client, sleep_recorder):
        fake_oracle.queue("bad", "worse", {"hasTable": "nope"})

        with pytest.raises(StageFailedError) as exc_info:
            oracle_client.call("detect", [], DetectionPayload, "DETECTION", policy=RetryPolicy(3))

        error = exc_info.value
        assert fake_oracle.call_count == 3
        assert sleep_recorder.delays == [1.0, 2.0]
        assert error.stage == "DETECTION"
        assert error.attempts == 3
        assert error.message.startswith("[DETECTION]")
        assert isinstance(error.last_error, OracleSchemaError)
        assert error.raw == {"hasTable": "nope"}

    def test_no_sleep_on_first_success(self, fake_oracle, oracle_client, sleep_recorder, detection_ok):
        fake_oracle.queue(detection_ok)

        oracle_client.call("detect", [], DetectionPayload, "DETECTION")

        assert sleep_recorder.delays == []

    def test_prompt_and_images_forwarded(self, fake_oracle, oracle_client, detection_ok):
        fake_oracle.queue(detection_ok)

        oracle_client.call("detect this", ["a", "b", "c"], DetectionPayload, "DETECTION")

        assert fake_oracle.prompts == ["detect this"]
        assert fake_oracle.image_counts == [3]

    def test_default_sleep_is_injectable(self, fake_oracle, detection_ok):
        client = OracleClient(fake_oracle, sleep=lambda _: None)
        fake_oracle.queue("bad", detection_ok)

        assert client.call("detect", [], DetectionPayload, "DETECTION").has_table is True


class TestGeminiOracle:
    """Tests for Gemini client construction."""

    def test_missing_api_key(self):
        with pytest.raises(OracleConfigurationError):
            GeminiOracle(OracleConfig(api_key=None, model_name="gemini-1.5-flash"))
