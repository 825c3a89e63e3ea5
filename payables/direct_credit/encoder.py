"""
Direct credit file encoder.

``build_settlement_batch`` reads a completed payment run once into frozen values;
``encode_batch`` turns those values into file bytes without touching the database,
so the same batch always produces the same bytes.
"""

from __future__ import annotations

import csv
import io
import logging
import re
import unicodedata
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from django.conf import settings
from django.utils.text import slugify

from core.exceptions import EncodingWarning, InvalidStateError, ValidationError
from core.money import ZERO, format_amount, from_minor_units, to_minor_units

from payables.models import PaymentRun

from .layouts import DIRECT_CREDIT_FORMATS, DelimitedFormat, FieldOverflow, FixedWidthFormat

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementItem:
    allocation_id: int
    bill_id: int
    bill_number: str
    payee_name: str
    branch_code: str
    account_number: str
    amount: Decimal

    @property
    def bank_reference(self) -> str:
        if not self.account_number:
            return ""
        return f"{self.branch_code} {self.account_number}".strip()


@dataclass(frozen=True)
class SettlementBatch:
    run_id: int
    company_name: str
    run_date: date
    currency: str
    bank_code: str
    branch_code: str
    account_number: str
    user_identifier: str
    remitter_name: str
    file_description: str
    items: tuple[SettlementItem, ...]


@dataclass(frozen=True)
class DirectCreditFile:
    filename: str
    content_type: str
    content: bytes
    warnings: tuple[EncodingWarning, ...]
    payment_count: int
    total_amount: Decimal


def get_format(code: str | None) -> FixedWidthFormat | DelimitedFormat:
    code = (code or getattr(settings, "DIRECT_CREDIT_DEFAULT_FORMAT", "CSV")).upper()
    try:
        return DIRECT_CREDIT_FORMATS[code]
    except KeyError:
        raise ValidationError(
            f"Unknown direct credit format {code!r}.",
            code="unknown_format",
            supported=sorted(DIRECT_CREDIT_FORMATS),
        ) from None


def build_settlement_batch(run: PaymentRun) -> SettlementBatch:
    run = PaymentRun.objects.select_related("business", "bank_account").get(pk=run.pk)
    if run.status != PaymentRun.Status.COMPLETED:
        raise InvalidStateError(
            "Bank files can only be produced for completed payment runs.",
            code="run_not_completed",
            payment_run_id=run.pk,
            status=run.status,
        )
    bank_account = run.bank_account
    items = tuple(
        SettlementItem(
            allocation_id=allocation.pk,
            bill_id=allocation.bill_id,
            bill_number=allocation.bill.bill_number,
            payee_name=allocation.bill.supplier.payee_name,
            branch_code=allocation.bill.supplier.bank_branch_code,
            account_number=allocation.bill.supplier.bank_account_number,
            amount=allocation.amount,
        )
        for allocation in run.allocations.select_related("bill__supplier").order_by("sequence", "id")
    )
    return SettlementBatch(
        run_id=run.pk,
        company_name=run.business.name,
        run_date=run.run_date,
        currency=bank_account.currency,
        bank_code=bank_account.bank_code,
        branch_code=bank_account.branch_code,
        account_number=bank_account.account_number,
        user_identifier=bank_account.user_identifier,
        remitter_name=bank_account.remitter_name or run.business.name,
        file_description=bank_account.file_description,
        items=items,
    )


def build_filename(batch: SettlementBatch, extension: str) -> str:
    company = slugify(batch.company_name) or "company"
    return f"direct-credit-{company}-{batch.run_id}-{batch.run_date:%Y-%m-%d}.{extension}"


def encode_batch(batch: SettlementBatch, format_code: str | None = None) -> DirectCreditFile:
    fmt = get_format(format_code)
    if isinstance(fmt, FixedWidthFormat):
        return _encode_fixed_width(batch, fmt)
    return _encode_delimited(batch, fmt)


def export_direct_credit(run: PaymentRun, format_code: str | None = None) -> DirectCreditFile:
    result = encode_batch(build_settlement_batch(run), format_code)
    logger.info(
        "Direct credit file %s: %s payments, total %s, %s warnings",
        result.filename,
        result.payment_count,
        result.total_amount,
        len(result.warnings),
    )
    return result


def _no_valid_rows(batch: SettlementBatch, warnings: list[EncodingWarning]) -> ValidationError:
    return ValidationError(
        "No payment in this run could be written to the bank file.",
        code="no_valid_rows",
        payment_run_id=batch.run_id,
        errors=[warning.as_dict() for warning in warnings],
    )


def _missing_account_warning(row: int, item: SettlementItem) -> EncodingWarning:
    return EncodingWarning(
        f"Row {row}: {item.payee_name} has no bank account number; payment skipped.",
        code="missing_account_number",
        row=row,
        allocation_id=item.allocation_id,
        detail={"bill_id": item.bill_id, "bill_number": item.bill_number},
    )


def _encode_delimited(batch: SettlementBatch, fmt: DelimitedFormat) -> DirectCreditFile:
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=fmt.delimiter, lineterminator=fmt.line_terminator)
    warnings: list[EncodingWarning] = []
    total = ZERO
    count = 0
    for row, item in enumerate(batch.items, start=1):
        if not item.account_number:
            warnings.append(_missing_account_warning(row, item))
            continue
        values = {
            "bank_reference": item.bank_reference,
            "payee_name": item.payee_name,
            "amount": format_amount(item.amount, batch.currency),
            "reference": item.bill_number,
        }
        writer.writerow([values[column] for column in fmt.columns])
        total += item.amount
        count += 1
    if count == 0:
        raise _no_valid_rows(batch, warnings)
    return DirectCreditFile(
        filename=build_filename(batch, fmt.extension),
        content_type=fmt.content_type,
        content=buffer.getvalue().encode(fmt.encoding),
        warnings=tuple(warnings),
        payment_count=count,
        total_amount=total,
    )


ACCOUNT_NUMBER_RE = re.compile(r"^[0-9-]+$")
BANK_CODE_RE = re.compile(r"^[A-Za-z]{3}$")
USER_ID_RE = re.compile(r"^[0-9]{1,6}$")


def _transliterate(text: str) -> tuple[str, bool]:
    """ASCII form of ``text`` and whether any character had no ASCII equivalent."""
    result = []
    dropped = False
    for ch in unicodedata.normalize("NFKD", text or ""):
        if ch.isascii():
            result.append(ch)
        elif not unicodedata.combining(ch):
            dropped = True
    return "".join(result), dropped


def to_ascii(text: str) -> str:
    return _transliterate(text)[0]


def normalize_bsb(value: str) -> str | None:
    digits = re.sub(r"[^0-9]", "", value or "")
    if len(digits) != 6:
        return None
    return f"{digits[:3]}-{digits[3:]}"


def clean_account_number(value: str) -> str | None:
    """Account number without whitespace, or None when it holds anything but digits and hyphens."""
    compact = re.sub(r"\s", "", value or "")
    if not ACCOUNT_NUMBER_RE.match(compact):
        return None
    return compact


def _header_values(batch: SettlementBatch, fmt: FixedWidthFormat) -> dict:
    missing = [
        name
        for name, value in (
            ("bank_code", batch.bank_code),
            ("branch_code", normalize_bsb(batch.branch_code)),
            ("account_number", batch.account_number),
            ("user_identifier", batch.user_identifier),
        )
        if not value
    ]
    invalid = []
    if batch.bank_code and not BANK_CODE_RE.match(batch.bank_code):
        invalid.append("bank_code")
    if batch.account_number:
        account = clean_account_number(batch.account_number)
        if account is None or len(account) > 9:
            invalid.append("account_number")
    if batch.user_identifier and not USER_ID_RE.match(batch.user_identifier):
        invalid.append("user_identifier")
    if missing or invalid:
        raise ValidationError(
            "The bank account is missing direct entry settings.",
            code="incomplete_bank_settings",
            missing=missing,
            invalid=invalid,
        )
    return {
        "institution": batch.bank_code.upper(),
        "user_name": to_ascii(batch.company_name),
        "user_id": batch.user_identifier,
        "description": to_ascii(batch.file_description),
        "processing_date": batch.run_date.strftime(fmt.date_format),
    }


def _truncation_warnings(layout_name: str, truncated, row=None, allocation_id=None) -> list[EncodingWarning]:
    where = f"Row {row}" if row is not None else f"File {layout_name}"
    return [
        EncodingWarning(
            f"{where}: {spec.name.replace('_', ' ')} truncated to {spec.width} characters.",
            code="truncated",
            row=row,
            allocation_id=allocation_id,
            detail={"field": spec.name, "width": spec.width},
        )
        for spec in truncated
    ]


def _transliteration_warning(field_name: str, text: str, row=None, allocation_id=None) -> EncodingWarning:
    where = f"Row {row}" if row is not None else "File header"
    return EncodingWarning(
        f"{where}: {field_name.replace('_', ' ')} {text!r} has characters with no ASCII equivalent; they were dropped.",
        code="transliterated",
        row=row,
        allocation_id=allocation_id,
        detail={"field": field_name, "value": text},
    )


def _encode_fixed_width(batch: SettlementBatch, fmt: FixedWidthFormat) -> DirectCreditFile:
    warnings: list[EncodingWarning] = []
    try:
        header, truncated = fmt.header.render(_header_values(batch, fmt))
    except FieldOverflow as exc:
        raise ValidationError(
            f"Bank file setting {exc.field_spec.name} is too long.",
            code="invalid_bank_settings",
            field=exc.field_spec.name,
        ) from exc
    warnings.extend(_truncation_warnings("header", truncated))

    trace_bsb = normalize_bsb(batch.branch_code)
    trace_account = clean_account_number(batch.account_number)
    remitter, remitter_dropped = _transliterate(batch.remitter_name)
    if _transliterate(batch.company_name)[1]:
        warnings.append(_transliteration_warning("user_name", batch.company_name))
    if remitter_dropped:
        warnings.append(_transliteration_warning("remitter_name", batch.remitter_name))
    details: list[str] = []
    emitted_units = 0
    for row, item in enumerate(batch.items, start=1):
        if not item.account_number:
            warnings.append(_missing_account_warning(row, item))
            continue
        bsb = normalize_bsb(item.branch_code)
        if bsb is None:
            warnings.append(
                EncodingWarning(
                    f"Row {row}: {item.payee_name} has an invalid BSB {item.branch_code!r}; payment skipped.",
                    code="invalid_bsb",
                    row=row,
                    allocation_id=item.allocation_id,
                    detail={"bill_id": item.bill_id},
                )
            )
            continue
        account = clean_account_number(item.account_number)
        if account is None:
            warnings.append(
                EncodingWarning(
                    f"Row {row}: {item.payee_name} has an invalid account number {item.account_number!r}; payment skipped.",
                    code="invalid_account_number",
                    row=row,
                    allocation_id=item.allocation_id,
                    detail={"bill_id": item.bill_id, "bill_number": item.bill_number},
                )
            )
            continue
        units = to_minor_units(item.amount, batch.currency)
        account_name, name_dropped = _transliterate(item.payee_name)
        reference, reference_dropped = _transliterate(item.bill_number)
        values = {
            "bsb": bsb,
            "account_number": account,
            "indicator": "",
            "amount": str(units),
            "account_name": account_name,
            "lodgement_reference": reference,
            "trace_bsb": trace_bsb,
            "trace_account": trace_account,
            "remitter_name": remitter,
        }
        try:
            line, truncated = fmt.detail.render(values)
        except FieldOverflow as exc:
            warnings.append(
                EncodingWarning(
                    f"Row {row}: {exc.field_spec.name.replace('_', ' ')} does not fit the bank format; payment skipped.",
                    code=f"{exc.field_spec.name}_overflow",
                    row=row,
                    allocation_id=item.allocation_id,
                    detail={"bill_id": item.bill_id, "field": exc.field_spec.name, "value": exc.value},
                )
            )
            continue
        if name_dropped:
            warnings.append(_transliteration_warning("account_name", item.payee_name, row=row, allocation_id=item.allocation_id))
        if reference_dropped:
            warnings.append(
                _transliteration_warning("lodgement_reference", item.bill_number, row=row, allocation_id=item.allocation_id)
            )
        warnings.extend(_truncation_warnings("detail", truncated, row=row, allocation_id=item.allocation_id))
        details.append(line)
        emitted_units += units

    if not details:
        raise _no_valid_rows(batch, warnings)

    try:
        trailer, _ = fmt.trailer.render(
            {
                "net_total": str(emitted_units),
                "credit_total": str(emitted_units),
                "debit_total": "0",
                "record_count": str(len(details)),
            }
        )
    except FieldOverflow as exc:
        raise ValidationError(
            "The payment run is too large for a single bank file.",
            code="batch_too_large",
            field=exc.field_spec.name,
        ) from exc

    text = fmt.line_terminator.join([header, *details, trailer]) + fmt.line_terminator
    content = text.encode(fmt.encoding)
    _verify_control_totals(content, fmt, emitted_units, len(details))
    return DirectCreditFile(
        filename=build_filename(batch, fmt.extension),
        content_type=fmt.content_type,
        content=content,
        warnings=tuple(warnings),
        payment_count=len(details),
        total_amount=from_minor_units(emitted_units, batch.currency),
    )


def decode_records(content: bytes, fmt: FixedWidthFormat) -> list[tuple[str, dict]]:
    records = []
    for line in content.decode(fmt.encoding).split(fmt.line_terminator):
        if not line:
            continue
        layout = fmt.layout_for(line)
        if layout is None or len(line) != layout.width:
            raise ValidationError("Unrecognised bank file record.", code="invalid_record", record=line[:20])
        records.append((layout.name, layout.parse(line)))
    return records


def _verify_control_totals(content: bytes, fmt: FixedWidthFormat, expected_units: int, expected_count: int) -> None:
    records = decode_records(content, fmt)
    trailer = records[-1][1]
    detail_units = sum(int(values["amount"]) for name, values in records if name == fmt.detail.name)
    if (
        int(trailer["credit_total"]) != expected_units
        or int(trailer["record_count"]) != expected_count
        or detail_units != expected_units
    ):
        raise ValidationError(
            "Bank file control totals do not match its detail records.",
            code="control_total_mismatch",
            trailer_total=trailer["credit_total"],
            detail_total=detail_units,
        )
