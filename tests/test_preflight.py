# ============================================================================
# PRE-FLIGHT VALIDATION TESTS
# ============================================================================
# STATUS: Tests - Pre-flight validator
# PURPOSE: Verify submission checks run before a job task starts
# CREATED: 19 OCT 2026
# ============================================================================
"""
Pre-flight Validation Tests

Unit tests for JobPreflightValidator: submitter fields, record list,
per-record checks and GLM predictor parameters. All errors are collected.

Run with:
    pytest tests/test_preflight.py -v
"""

import pytest

from core.config import PipelineDefaults
from core.exceptions import ValidationError
from core.models import GeoLocation, Job, JobParameters, JobRecord
from services.preflight import JobPreflightValidator, PreflightResult


# ============================================================================
# HELPERS
# ============================================================================

def _record(record_id="KX000001", sequence="ACGTN-acgt", date="2015.5", location=True):
    return JobRecord(
        record_id=record_id,
        sequence=sequence,
        collection_date=date,
        location=GeoLocation(geoname_id=5128638, name="New York", feature_type="ADM1")
        if location else None,
    )


def _job(records=None, **kwargs) -> Job:
    if records is None:
        records = [_record("KX000001"), _record("KX000002")]
    params = kwargs.pop("parameters", JobParameters())
    return Job(
        job_name=kwargs.pop("job_name", "flu run #3"),
        reply_email=kwargs.pop("reply_email", "someone@example.org"),
        parameters=params,
        records=records,
    )


# ============================================================================
# RESULT
# ============================================================================

class TestPreflightResult:

    def test_defaults(self):
        result = PreflightResult(valid=True)
        assert result.errors == []
        assert result.warnings == []


# ============================================================================
# VALID SUBMISSIONS
# ============================================================================

class TestValidSubmission:

    def test_valid_job_passes(self):
        result = JobPreflightValidator().validate(_job())
        assert result.valid is True
        assert result.errors == []

    def test_check_returns_result(self):
        result = JobPreflightValidator().check(_job())
        assert isinstance(result, PreflightResult)

    def test_optional_submitter_fields(self):
        result = JobPreflightValidator().validate(_job(job_name=None, reply_email=None))
        assert result.valid is True

    def test_missing_location_is_only_a_warning(self):
        records = [_record("KX000001"), _record("KX000002", location=False)]
        result = JobPreflightValidator().validate(_job(records))
        assert result.valid is True
        assert result.warnings == ["Record KX000002 has no location and will be excluded"]

    def test_custom_predictors_with_glm(self):
        params = JobParameters(
            use_glm=True,
            predictors={"Utah": {"pop": 3.2}, "Nevada": {"pop": 3.1}},
        )
        assert JobPreflightValidator().validate(_job(parameters=params)).valid


# ============================================================================
# INVALID SUBMISSIONS
# ============================================================================

class TestSubmitterChecks:

    def test_bad_email(self):
        result = JobPreflightValidator().validate(_job(reply_email="not-an-email"))
        assert not result.valid
        assert "Invalid reply email: not-an-email" in result.errors

    def test_bad_job_name(self):
        result = JobPreflightValidator().validate(_job(job_name="<script>"))
        assert not result.valid
        assert any("Invalid job name" in e for e in result.errors)


class TestRecordChecks:

    def test_too_few_records(self):
        result = JobPreflightValidator().validate(_job([_record()]))
        assert result.errors == ["At least 2 records are required, got 1"]

    def test_too_many_records(self):
        validator = JobPreflightValidator(PipelineDefaults(max_records=2))
        records = [_record(f"KX00000{i}") for i in range(3)]
        result = validator.validate(_job(records))
        assert result.errors == ["Record list is too long (3 > 2)"]

    def test_invalid_record_id(self):
        records = [_record("KX000001"), _record("bad id;")]
        result = JobPreflightValidator().validate(_job(records))
        assert "Invalid record id: bad id;" in result.errors

    def test_duplicate_record_id(self):
        records = [_record("KX000001"), _record("KX000001")]
        result = JobPreflightValidator().validate(_job(records))
        assert result.errors == ["Duplicate record id: KX000001"]

    def test_empty_sequence(self):
        records = [_record("KX000001"), _record("KX000002", sequence="  ")]
        result = JobPreflightValidator().validate(_job(records))
        assert result.errors == ["Record KX000002 has no sequence"]

    def test_non_nucleotide_sequence(self):
        records = [_record("KX000001"), _record("KX000002", sequence="ACGTXZ")]
        result = JobPreflightValidator().validate(_job(records))
        assert result.errors == ["Record KX000002 has invalid sequence characters"]

    @pytest.mark.parametrize("date,message", [
        (None, "Record KX000002 has no collection date"),
        ("2015-06-01", "Record KX000002 has an invalid collection date: 2015-06-01"),
        ("15.5", "Record KX000002 has an invalid collection date: 15.5"),
    ])
    def test_collection_date(self, date, message):
        records = [_record("KX000001"), _record("KX000002", date=date)]
        result = JobPreflightValidator().validate(_job(records))
        assert result.errors == [message]

    def test_collects_all_errors(self):
        records = [
            _record("KX000001", sequence=""),
            _record("KX000002", date="yesterday"),
        ]
        result = JobPreflightValidator().validate(_job(records, reply_email="x"))
        assert len(result.errors) == 3


class TestParameterChecks:

    def test_predictors_require_glm(self):
        params = JobParameters(predictors={"Utah": {"pop": 1.0}, "Nevada": {"pop": 2.0}})
        result = JobPreflightValidator().validate(_job(parameters=params))
        assert "Custom predictors require use_glm" in result.errors

    def test_predictor_rows_must_match(self):
        params = JobParameters(
            use_glm=True,
            predictors={"Utah": {"pop": 1.0}, "Nevada": {"area": 2.0}},
        )
        result = JobPreflightValidator().validate(_job(parameters=params))
        assert result.errors == ["Every predictor row must define the same predictors"]

    def test_empty_predictor_rows(self):
        params = JobParameters(use_glm=True, predictors={"Utah": {}, "Nevada": {}})
        result = JobPreflightValidator().validate(_job(parameters=params))
        assert result.errors == ["Predictor rows must not be empty"]


# ============================================================================
# CHECK (RAISING)
# ============================================================================

class TestCheck:

    def test_check_raises_with_joined_errors(self):
        records = [_record("KX000001"), _record("KX000001", sequence="")]
        with pytest.raises(ValidationError) as exc_info:
            JobPreflightValidator().check(_job(records, reply_email="x"))

        assert exc_info.value.user_message == (
            "Invalid reply email: x; Duplicate record id: KX000001; "
            "Record KX000001 has no sequence"
        )
