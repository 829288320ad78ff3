# ============================================================================
# PRE-FLIGHT VALIDATION
# ============================================================================
# STATUS: Service - Submission pre-flight validation
# PURPOSE: Validate submissions before a job task is started
# CREATED: 19 OCT 2026
# ============================================================================
"""
Pre-flight Validation

Synchronous, cheap checks run at submit time, before a job id is handed
back and before any tool is spawned. Catches bad parameters and malformed
records instead of burning an alignment run on them.

Location problems are not checked here: a record without a usable location
is dropped by the disjointer, and the partition bounds are enforced there.

PreflightResult collects ALL errors (not fail-fast on first).
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from core.config import PipelineDefaults
from core.exceptions import ValidationError
from core.logging import get_logger
from core.models import Job

logger = get_logger(__name__)

RECORD_ID_REGEX = re.compile(r"^[A-Za-z0-9_.\-]{1,64}$")
EMAIL_REGEX = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
JOB_NAME_REGEX = re.compile(r"^[\w \-#&]{3,255}$")
SEQUENCE_REGEX = re.compile(r"^[ACGTURYKMSWBDHVN\-?.]+$", re.IGNORECASE)
DECIMAL_DATE_REGEX = re.compile(r"^\d{4}(\.\d+)?$")

MIN_RECORDS = 2


# ============================================================================
# RESULT
# ============================================================================

@dataclass
class PreflightResult:
    """
    Result of pre-flight validation.

    Collects all errors; reports every problem at once rather than
    failing on the first and making the caller fix them one at a time.
    """
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


# ============================================================================
# VALIDATOR
# ============================================================================

class JobPreflightValidator:
    """
    Pre-flight validation for phylogeography job submissions.

    Usage:
        validator = JobPreflightValidator()
        validator.check(job)        # raises ValidationError
    """

    def __init__(self, config: Optional[PipelineDefaults] = None):
        self.config = config or PipelineDefaults()

    def validate(self, job: Job) -> PreflightResult:
        """Run all checks and collect the findings."""
        errors: List[str] = []
        warnings: List[str] = []

        errors.extend(self._check_submitter(job))
        errors.extend(self._check_record_count(job))

        record_errors, record_warnings = self._check_records(job)
        errors.extend(record_errors)
        warnings.extend(record_warnings)

        errors.extend(self._check_parameters(job))

        return PreflightResult(
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )

    def check(self, job: Job) -> PreflightResult:
        """validate(), raising ValidationError when anything is wrong."""
        result = self.validate(job)
        for warning in result.warnings:
            logger.warning(f"Preflight: {warning}")
        if not result.valid:
            message = "; ".join(result.errors)
            logger.info(f"Rejected submission: {message}")
            raise ValidationError(f"Preflight failed: {message}", message)
        return result

    # ================================================================
    # CHECKS
    # ================================================================

    def _check_submitter(self, job: Job) -> List[str]:
        errors = []
        if job.reply_email is not None and not EMAIL_REGEX.match(job.reply_email):
            errors.append(f"Invalid reply email: {job.reply_email}")
        if job.job_name is not None and not JOB_NAME_REGEX.match(job.job_name):
            errors.append(f"Invalid job name: {job.job_name}")
        return errors

    def _check_record_count(self, job: Job) -> List[str]:
        count = len(job.records)
        if count < MIN_RECORDS:
            return [f"At least {MIN_RECORDS} records are required, got {count}"]
        if count > self.config.max_records:
            return [f"Record list is too long ({count} > {self.config.max_records})"]
        return []

    def _check_records(self, job: Job):
        errors: List[str] = []
        warnings: List[str] = []
        seen = set()
        for record in job.records:
            record_id = record.record_id
            if not RECORD_ID_REGEX.match(record_id):
                errors.append(f"Invalid record id: {record_id}")
                continue
            if record_id in seen:
                errors.append(f"Duplicate record id: {record_id}")
            seen.add(record_id)

            sequence = re.sub(r"\s+", "", record.sequence)
            if not sequence:
                errors.append(f"Record {record_id} has no sequence")
            elif not SEQUENCE_REGEX.match(sequence):
                errors.append(f"Record {record_id} has invalid sequence characters")

            date = (record.collection_date or "").strip()
            if not date:
                errors.append(f"Record {record_id} has no collection date")
            elif not DECIMAL_DATE_REGEX.match(date):
                errors.append(f"Record {record_id} has an invalid collection date: {date}")

            if record.location is None:
                warnings.append(f"Record {record_id} has no location and will be excluded")
        return errors, warnings

    def _check_parameters(self, job: Job) -> List[str]:
        params = job.parameters
        errors = []
        if params.predictors and not params.use_glm:
            errors.append("Custom predictors require use_glm")
        if params.predictors:
            names = [set(values) for values in params.predictors.values()]
            if any(row != names[0] for row in names):
                errors.append("Every predictor row must define the same predictors")
            if any(not row for row in names):
                errors.append("Predictor rows must not be empty")
        return errors


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["PreflightResult", "JobPreflightValidator"]
