"""
Declarative bank file layouts.

A fixed-width format is three RecordLayouts (header, detail, trailer), each a tuple of
FieldSpecs. Adding a bank means adding a FixedWidthFormat value here; the encoder
does not change.
"""

from __future__ import annotations

from dataclasses import dataclass

LEFT = "left"
RIGHT = "right"

TRUNCATE = "truncate"
REJECT = "reject"


class FieldOverflow(Exception):
    def __init__(self, field_spec: "FieldSpec", value: str):
        super().__init__(f"{field_spec.name}: {value!r} does not fit in {field_spec.width} characters")
        self.field_spec = field_spec
        self.value = value


@dataclass(frozen=True)
class FieldSpec:
    name: str
    width: int
    source: str | None = None
    constant: str | None = None
    align: str = LEFT
    pad: str = " "
    overflow: str = TRUNCATE

    def render(self, values: dict) -> tuple[str, bool]:
        """Return the padded text and whether it had to be truncated."""
        if self.constant is not None:
            raw = self.constant
        elif self.source is not None:
            raw = str(values.get(self.source, "") or "")
        else:
            raw = ""
        truncated = False
        if len(raw) > self.width:
            if self.overflow == REJECT:
                raise FieldOverflow(self, raw)
            raw = raw[: self.width]
            truncated = True
        if self.align == RIGHT:
            return raw.rjust(self.width, self.pad), truncated
        return raw.ljust(self.width, self.pad), truncated


@dataclass(frozen=True)
class RecordLayout:
    name: str
    width: int
    fields: tuple[FieldSpec, ...]

    def __post_init__(self):
        total = sum(spec.width for spec in self.fields)
        if total != self.width:
            raise ValueError(f"{self.name} layout fields add up to {total}, expected {self.width}")

    @property
    def record_type(self) -> str:
        return self.fields[0].constant or ""

    def offsets(self):
        position = 0
        for spec in self.fields:
            yield spec, position, position + spec.width
            position += spec.width

    def render(self, values: dict) -> tuple[str, list[FieldSpec]]:
        parts = []
        truncated = []
        for spec in self.fields:
            text, was_truncated = spec.render(values)
            parts.append(text)
            if was_truncated:
                truncated.append(spec)
        return "".join(parts), truncated

    def parse(self, line: str) -> dict[str, str]:
        return {
            spec.name: line[start:end].strip()
            for spec, start, end in self.offsets()
            if spec.source is not None
        }


@dataclass(frozen=True)
class FixedWidthFormat:
    code: str
    label: str
    extension: str
    content_type: str
    header: RecordLayout
    detail: RecordLayout
    trailer: RecordLayout
    date_format: str = "%d%m%y"
    line_terminator: str = "\r\n"
    encoding: str = "ascii"

    def layout_for(self, line: str) -> RecordLayout | None:
        for layout in (self.header, self.detail, self.trailer):
            if line.startswith(layout.record_type):
                return layout
        return None


@dataclass(frozen=True)
class DelimitedFormat:
    code: str
    label: str
    extension: str
    content_type: str
    columns: tuple[str, ...]
    delimiter: str = ","
    line_terminator: str = "\r\n"
    encoding: str = "utf-8"


def _blank(name: str, width: int) -> FieldSpec:
    return FieldSpec(name=name, width=width)


def _zero_amount(name: str, source: str) -> FieldSpec:
    return FieldSpec(name=name, width=10, source=source, align=RIGHT, pad="0", overflow=REJECT)


# Australian Bankers' Association direct entry (Cemtex) file, 120 characters per record.
ABA_FORMAT = FixedWidthFormat(
    code="ABA",
    label="ABA direct entry",
    extension="aba",
    content_type="application/octet-stream",
    header=RecordLayout(
        name="header",
        width=120,
        fields=(
            FieldSpec("record_type", 1, constant="0"),
            _blank("blank_1", 17),
            FieldSpec("reel_sequence", 2, constant="01"),
            FieldSpec("institution", 3, source="institution", overflow=REJECT),
            _blank("blank_2", 7),
            FieldSpec("user_name", 26, source="user_name"),
            FieldSpec("user_id", 6, source="user_id", align=RIGHT, pad="0", overflow=REJECT),
            FieldSpec("description", 12, source="description"),
            FieldSpec("processing_date", 6, source="processing_date", overflow=REJECT),
            _blank("blank_3", 40),
        ),
    ),
    detail=RecordLayout(
        name="detail",
        width=120,
        fields=(
            FieldSpec("record_type", 1, constant="1"),
            FieldSpec("bsb", 7, source="bsb", overflow=REJECT),
            FieldSpec("account_number", 9, source="account_number", align=RIGHT, overflow=REJECT),
            FieldSpec("indicator", 1, source="indicator"),
            FieldSpec("transaction_code", 2, constant="53"),
            _zero_amount("amount", "amount"),
            FieldSpec("account_name", 32, source="account_name"),
            FieldSpec("lodgement_reference", 18, source="lodgement_reference"),
            FieldSpec("trace_bsb", 7, source="trace_bsb", overflow=REJECT),
            FieldSpec("trace_account", 9, source="trace_account", align=RIGHT, overflow=REJECT),
            FieldSpec("remitter_name", 16, source="remitter_name"),
            FieldSpec("withholding_tax", 8, constant="00000000"),
        ),
    ),
    trailer=RecordLayout(
        name="trailer",
        width=120,
        fields=(
            FieldSpec("record_type", 1, constant="7"),
            FieldSpec("bsb_filler", 7, constant="999-999"),
            _blank("blank_1", 12),
            _zero_amount("net_total", "net_total"),
            _zero_amount("credit_total", "credit_total"),
            _zero_amount("debit_total", "debit_total"),
            _blank("blank_2", 24),
            FieldSpec("record_count", 6, source="record_count", align=RIGHT, pad="0", overflow=REJECT),
            _blank("blank_3", 40),
        ),
    ),
)

CSV_FORMAT = DelimitedFormat(
    code="CSV",
    label="Generic CSV",
    extension="csv",
    content_type="text/csv",
    columns=("bank_reference", "payee_name", "amount", "reference"),
)

DIRECT_CREDIT_FORMATS: dict[str, FixedWidthFormat | DelimitedFormat] = {
    CSV_FORMAT.code: CSV_FORMAT,
    ABA_FORMAT.code: ABA_FORMAT,
}
