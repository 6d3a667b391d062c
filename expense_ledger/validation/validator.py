"""
Two-Stage Entry Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (date, particulars, amount)
- Format validation (ISO dates, Credit/Debit)
- Amount normalization
- Errors here block the write; nothing reaches the store

STAGE 2 - SEMANTIC VALIDATION:
- Future date detection
- Absurd amount detection
- Warnings only, the user decides

Extra amount digits are truncated, not rejected. That is reported as a
warning so the user sees exactly what will be stored.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from pydantic import ValidationError

from expense_ledger.config import get_settings
from expense_ledger.config.settings import LedgerSettings
from expense_ledger.engine.normalizer import normalize_amount, parse_amount, was_truncated
from expense_ledger.models.entry import (
    AMOUNT_MAX_DIGITS,
    COMMENTS_MAX_LENGTH,
    PARTICULARS_MAX_LENGTH,
    EntryForm,
    EntryType,
    NewEntry,
    ValidationIssue,
    ValidationResult,
)


EDITABLE_FIELDS = ("date", "particulars", "type", "comments", "amount")


class EntryValidationError(Exception):
    """
    Input cannot become an entry.

    Raised before any store call. Carries every issue found so the form
    can show them all at once.
    """

    def __init__(self, result: ValidationResult):
        errors = [issue.message for issue in result.issues if issue.severity == "error"]
        super().__init__("; ".join(errors) or "Invalid entry")
        self.result = result
        self.issues = result.issues


class EntryValidator:
    """
    Turns raw form input into validated entries and field changes.

    Stage 1 checks structure, stage 2 flags suspicious values.
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    # ------------------------------------------------------------------
    # Field parsers: each returns the typed value or None and appends issues
    # ------------------------------------------------------------------

    def _parse_date(self, value: Any, issues: list[ValidationIssue]) -> Optional[date]:
        if value is None or value == "":
            issues.append(ValidationIssue(
                field="date",
                issue_type="missing",
                message="Date is required",
                severity="error",
                suggested_fix="Pick the date of the transaction",
            ))
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value).strip())
        except ValueError:
            issues.append(ValidationIssue(
                field="date",
                issue_type="invalid_format",
                message=f"'{value}' is not a valid date",
                severity="error",
                suggested_fix="Use the YYYY-MM-DD format",
            ))
            return None

    def _parse_particulars(self, value: Any, issues: list[ValidationIssue]) -> Optional[str]:
        text = str(value).strip() if value is not None else ""
        if not text:
            issues.append(ValidationIssue(
                field="particulars",
                issue_type="missing",
                message="Particulars are required",
                severity="error",
                suggested_fix="Describe what the money was for",
            ))
            return None
        if len(text) > PARTICULARS_MAX_LENGTH:
            issues.append(ValidationIssue(
                field="particulars",
                issue_type="too_long",
                message=f"Particulars must be at most {PARTICULARS_MAX_LENGTH} characters",
                severity="error",
            ))
            return None
        return text

    def _parse_type(
        self,
        value: Any,
        issues: list[ValidationIssue],
        allow_default: bool = True,
    ) -> Optional[EntryType]:
        if (value is None or str(value).strip() == "") and allow_default:
            return EntryType(self._settings.default_entry_type)
        if isinstance(value, EntryType):
            return value
        for entry_type in EntryType:
            if str(value).strip().lower() == entry_type.value.lower():
                return entry_type
        issues.append(ValidationIssue(
            field="type",
            issue_type="invalid_value",
            message=f"Type must be Credit or Debit, got '{value if value is not None else ''}'",
            severity="error",
        ))
        return None

    def _parse_comments(self, value: Any, issues: list[ValidationIssue]) -> Optional[str]:
        text = str(value).strip() if value is not None else ""
        if len(text) > COMMENTS_MAX_LENGTH:
            issues.append(ValidationIssue(
                field="comments",
                issue_type="too_long",
                message=f"Comments must be at most {COMMENTS_MAX_LENGTH} characters",
                severity="error",
            ))
            return None
        return text

    def _parse_amount(self, value: Any, issues: list[ValidationIssue]) -> Optional[Decimal]:
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            # Plain notation so "1e-05" style text never reaches the normalizer
            value = format(Decimal(str(value)), "f")
        raw = "" if value is None else str(value)

        if raw.strip().startswith("-") and normalize_amount(raw):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="negative",
                message="Amount cannot be negative",
                severity="error",
                suggested_fix="Enter the amount without a sign and choose Debit",
            ))
            return None

        try:
            amount = parse_amount(raw)
        except InvalidOperation:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount is too large to store",
                severity="error",
            ))
            return None

        if amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required" if not raw.strip() else f"'{raw}' is not a number",
                severity="error",
                suggested_fix="Enter the amount using digits, e.g. 1250.50",
            ))
            return None

        if len(amount.as_tuple().digits) > AMOUNT_MAX_DIGITS:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="too_large",
                message=f"Amount can have at most {AMOUNT_MAX_DIGITS - 2} digits before the decimal point",
                severity="error",
            ))
            return None

        if was_truncated(raw):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="truncated",
                message=f"Amount '{raw}' was cut to {amount} (two decimal places)",
                severity="warning",
            ))
        return amount

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _validate_schema(
        self,
        fields: dict[str, Any],
        partial: bool,
    ) -> tuple[dict[str, Any], list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        With partial=True only the supplied fields are checked, but a
        required field still cannot be blanked.

        Returns: (parsed_fields, list_of_issues)
        """
        issues: list[ValidationIssue] = []
        parsed: dict[str, Any] = {}

        for key in fields:
            if key == "id":
                issues.append(ValidationIssue(
                    field="id",
                    issue_type="immutable",
                    message="Entry ids are assigned by the store and cannot be set",
                    severity="error",
                ))
            elif key == "balance":
                issues.append(ValidationIssue(
                    field="balance",
                    issue_type="derived",
                    message="Balance is computed from the ledger and cannot be entered",
                    severity="error",
                ))
            elif key not in EDITABLE_FIELDS:
                issues.append(ValidationIssue(
                    field=key,
                    issue_type="unknown_field",
                    message=f"Unknown field '{key}'",
                    severity="error",
                ))

        parsers = {
            "date": self._parse_date,
            "particulars": self._parse_particulars,
            # An edit never falls back to the default type
            "type": lambda value, found: self._parse_type(value, found, allow_default=not partial),
            "comments": self._parse_comments,
            "amount": self._parse_amount,
        }
        for name, parser in parsers.items():
            if partial and name not in fields:
                continue
            value = parser(fields.get(name), issues)
            if value is not None:
                parsed[name] = value

        if partial and not fields:
            issues.append(ValidationIssue(
                field="changes",
                issue_type="empty",
                message="Nothing to update",
                severity="error",
            ))

        return parsed, issues

    def _validate_semantic(self, parsed: dict[str, Any]) -> list[ValidationIssue]:
        """
        Stage 2: Semantic validation.

        Only warnings. A ledger may legitimately hold odd-looking rows.
        """
        issues: list[ValidationIssue] = []
        today = date.today()

        entry_date = parsed.get("date")
        max_future = today + timedelta(days=self._settings.future_date_tolerance_days)
        if entry_date and entry_date > max_future:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Date ({entry_date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        amount = parsed.get("amount")
        if amount is not None:
            if amount > Decimal(str(self._settings.max_entry_amount)):
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="suspicious_value",
                    message=f"Amount ({amount:,.2f}) seems unusually high",
                    severity="warning",
                    suggested_fix="Please verify this amount is correct",
                ))
            elif amount == 0:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="suspicious_value",
                    message="Amount is zero; the balance will not change",
                    severity="warning",
                ))

        return issues

    def _run(
        self,
        fields: dict[str, Any],
        partial: bool,
    ) -> tuple[ValidationResult, dict[str, Any]]:
        parsed, issues = self._validate_schema(fields, partial)
        schema_valid = not any(issue.severity == "error" for issue in issues)

        # Only run stage 2 if stage 1 passes
        if schema_valid:
            issues.extend(self._validate_semantic(parsed))

        result = ValidationResult(
            is_valid=schema_valid,
            issues=issues,
            warnings=[issue.message for issue in issues if issue.severity == "warning"],
        )
        return result, parsed

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate_form(
        self,
        form: Union[EntryForm, dict],
    ) -> tuple[ValidationResult, Optional[NewEntry]]:
        """
        Validate a create form.

        Returns:
            (validation_result, new_entry or None when invalid)
        """
        fields = form.model_dump() if isinstance(form, EntryForm) else dict(form)
        result, parsed = self._run(fields, partial=False)
        if not result.is_valid:
            return result, None
        try:
            return result, NewEntry(**parsed)
        except ValidationError as e:
            result.is_valid = False
            result.issues.append(ValidationIssue(
                field="entry",
                issue_type="schema",
                message=str(e),
                severity="error",
            ))
            return result, None

    def build_new_entry(self, form: Union[EntryForm, dict]) -> NewEntry:
        """Validate a create form or raise EntryValidationError."""
        result, entry = self.validate_form(form)
        if entry is None:
            raise EntryValidationError(result)
        return entry

    def validate_changes(
        self,
        changes: dict[str, Any],
    ) -> tuple[ValidationResult, dict[str, Any]]:
        """
        Validate a partial edit.

        Returns:
            (validation_result, typed field changes)
        """
        return self._run(dict(changes), partial=True)

    def build_changes(self, changes: dict[str, Any]) -> dict[str, Any]:
        """Validate a partial edit or raise EntryValidationError."""
        result, parsed = self.validate_changes(changes)
        if not result.is_valid:
            raise EntryValidationError(result)
        return parsed

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.
        """
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []

        if not result.is_valid:
            lines.append("Please fix the following before saving:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
