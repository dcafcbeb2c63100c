# ledger/csv_io.py
"""
Bulk import and export of the asset ledger as delimited text.

Headers are matched case-insensitively against the English column names or
the legacy Japanese ledger headers. Cells are forgiving: bad numbers and
out-of-range scores become unset, unknown statuses become `unfilled`, rows
with nothing in them are skipped.
"""
import csv
import io
import logging
import re
from datetime import datetime

from ledger.models import Asset, AssetStatus, as_utc, utcnow
from ledger.workflow import check_invariants

logger = logging.getLogger(__name__)

# Column key -> accepted header spellings (first one is what export writes)
COLUMNS: dict[str, tuple[str, ...]] = {
    "asset_number": ("asset_number", "資産番号"),
    "acquisition_date": ("acquisition_date", "取得年月日"),
    "acquisition_amount": ("acquisition_amount", "取得金額"),
    "lifespan_years": ("lifespan_years", "寿命年数"),
    "equipment_name": ("equipment_name", "設備名"),
    "factory": ("factory", "工場"),
    "catalog_name": ("catalog_name", "カタログ名"),
    "description": ("description", "説明"),
    "building": ("building", "建物"),
    "floor": ("floor", "フロア"),
    "g": ("G",),
    "u": ("U",),
    "t": ("T",),
    "status": ("status", "ステータス"),
    "input_by": ("input_by", "入力者"),
    "assigned_to": ("assigned_to", "担当者"),
    "updated_at": ("updated_at", "更新日時"),
}
OPTIONAL_COLUMNS: dict[str, tuple[str, ...]] = {
    "comment": ("comment", "コメント"),
}

STATUS_ALIASES = {
    "未入力": AssetStatus.UNFILLED,
    "確認待ち": AssetStatus.PENDING_REVIEW,
    "承認済み": AssetStatus.APPROVED,
    "差し戻し": AssetStatus.REJECTED,
}

UNASSIGNED = "unassigned"

_LEADING_INT = re.compile(r"^[+-]?\d+")
_DATETIME_FORMATS = ("%Y/%m/%d %H:%M:%S", "%Y/%m/%d %H:%M", "%Y-%m-%d %H:%M")


class CsvImportError(Exception):
    """The file cannot be imported at all (no header, missing columns, no rows)."""
    pass


# --- cell parsers ---

def parse_number(value: str | None) -> int | None:
    """Leading integer of the cell; thousands separators allowed."""
    if not value:
        return None
    normalized = value.replace(",", "").strip()
    match = _LEADING_INT.match(normalized)
    return int(match.group()) if match else None


def parse_score(value: str | None) -> int | None:
    score = parse_number(value)
    if score is None or not 1 <= score <= 5:
        return None
    return score


def parse_status(value: str | None) -> AssetStatus:
    text = (value or "").strip()
    if text in STATUS_ALIASES:
        return STATUS_ALIASES[text]
    try:
        return AssetStatus(text.lower())
    except ValueError:
        return AssetStatus.UNFILLED


def parse_timestamp(value: str | None) -> datetime:
    text = (value or "").strip()
    if text:
        try:
            return as_utc(datetime.fromisoformat(text))
        except ValueError:
            pass
        for fmt in _DATETIME_FORMATS:
            try:
                return as_utc(datetime.strptime(text, fmt))
            except ValueError:
                continue
    return utcnow()


# --- import ---

def _header_map(fieldnames: list[str]) -> dict[str, str]:
    """Column key -> actual header in the file."""
    normalized = {name.strip().lower(): name for name in fieldnames if name}
    found = {}
    for key, aliases in {**COLUMNS, **OPTIONAL_COLUMNS}.items():
        for alias in aliases:
            if alias.lower() in normalized:
                found[key] = normalized[alias.lower()]
                break
    return found


def _is_blank(row: dict) -> bool:
    # Overflow cells land under the None key as a list
    return not any(value.strip() for value in row.values() if isinstance(value, str))


def _row_to_asset(row: dict[str, str], headers: dict[str, str], index: int) -> Asset:
    def cell(key: str) -> str:
        header = headers.get(key)
        return (row.get(header) or "").strip() if header else ""

    asset_number = cell("asset_number") or f"CSV-{index + 1}"
    input_by = cell("input_by") or UNASSIGNED
    return Asset(
        id=asset_number,
        asset_number=asset_number,
        acquisition_date=cell("acquisition_date"),
        acquisition_amount=parse_number(cell("acquisition_amount")),
        lifespan_years=parse_number(cell("lifespan_years")),
        equipment_name=cell("equipment_name"),
        factory=cell("factory"),
        catalog_name=cell("catalog_name"),
        description=cell("description"),
        building=cell("building"),
        floor=cell("floor"),
        g=parse_score(cell("g")),
        u=parse_score(cell("u")),
        t=parse_score(cell("t")),
        comment=cell("comment"),
        status=parse_status(cell("status")),
        input_by=input_by,
        assigned_to=cell("assigned_to") or input_by,
        updated_at=parse_timestamp(cell("updated_at")),
    )


def parse_csv(text: str) -> list[Asset]:
    """
    Parse delimited text into assets, statuses as written in the file.

    Raises:
        CsvImportError: no header, required columns missing, or no data rows
    """
    # Excel likes to prepend a BOM
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    if not reader.fieldnames:
        raise CsvImportError("The file has no header row")

    headers = _header_map(reader.fieldnames)
    missing = [aliases[0] for key, aliases in COLUMNS.items() if key not in headers]
    if missing:
        raise CsvImportError(f"Missing required columns: {', '.join(missing)}")

    assets = []
    try:
        rows = [row for row in reader if not _is_blank(row)]
    except csv.Error as exc:
        raise CsvImportError(f"Malformed CSV: {exc}") from exc
    for index, row in enumerate(rows):
        assets.append(_row_to_asset(row, headers, index))

    if not assets:
        raise CsvImportError("No data rows found")
    return assets


def prepare_import(assets: list[Asset], preserve_status: bool = False) -> list[Asset]:
    """
    Decide the status each imported asset enters the workflow with.

    By default everything starts `unfilled`. With `preserve_status`, the
    file's status is kept unless the record could not legally be in it.
    """
    prepared = []
    for asset in assets:
        if not preserve_status:
            prepared.append(asset.model_copy(update={"status": AssetStatus.UNFILLED}))
            continue
        errors = check_invariants(asset)
        if errors:
            logger.info(
                "Imported asset %s cannot be '%s' (%s); importing as unfilled",
                asset.id, asset.status.value, ", ".join(sorted(errors)),
            )
            asset = asset.model_copy(update={"status": AssetStatus.UNFILLED})
        prepared.append(asset)
    return prepared


# --- export ---

def _export_value(asset: Asset, key: str) -> str:
    value = getattr(asset, key)
    if value is None:
        return ""
    if isinstance(value, AssetStatus):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def export_csv(assets: list[Asset]) -> str:
    """Header row plus one line per asset; cells with commas or quotes are quoted."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow([aliases[0] for aliases in COLUMNS.values()])
    for asset in assets:
        writer.writerow([_export_value(asset, key) for key in COLUMNS])
    return buffer.getvalue()
