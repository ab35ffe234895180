"""CSV parsing and structural validation for OrgMeter uploads."""
import logging
from dataclasses import dataclass, field

from orgmeter_upload.exceptions import CsvParseError, EmptyInputError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("paymentId", "from", "to", "type", "amount")
OPTIONAL_FIELDS = ("advanceId", "paidDate", "dueAt", "paid")
ALL_FIELDS = REQUIRED_FIELDS + OPTIONAL_FIELDS

# Required set reported back to clients when the structure check fails
ADVERTISED_REQUIRED_FIELDS = ("paymentId", "advanceId", "amount", "paidDate", "dueAt", "paid")


@dataclass
class StructureValidation:
    """Result of matching a header row against the client's field mappings."""

    is_valid: bool
    column_indexes: dict[str, int]
    missing_fields: list[str] = field(default_factory=list)
    found_fields: list[str] = field(default_factory=list)


def parse_csv(content: bytes) -> list[list[str]]:
    """
    Parse raw CSV bytes into a grid of trimmed string cells.

    Blank lines are dropped. A double quote toggles quoted mode, in which
    commas are kept as part of the field. Escaped quotes ("") are not
    unescaped. Rows may have different lengths.

    Args:
        content: Uploaded file content

    Returns:
        List of rows, each a list of cells

    Raises:
        EmptyInputError: If no non-blank lines remain
        CsvParseError: If the content is not valid UTF-8
    """
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise CsvParseError(f"File is not valid UTF-8 text: {e}") from e

    lines = [line.strip() for line in text.split("\n")]
    lines = [line for line in lines if line]

    if not lines:
        raise EmptyInputError("CSV file is empty")

    return [_parse_line(line) for line in lines]


def _parse_line(line: str) -> list[str]:
    row = []
    current = []
    in_quotes = False

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            row.append("".join(current).strip())
            current = []
        else:
            current.append(char)

    row.append("".join(current).strip())
    return row


def validate_csv_structure(headers: list[str], field_mappings: dict) -> StructureValidation:
    """
    Resolve each logical field to a column index in the header row.

    Header matching is case-insensitive and ignores surrounding whitespace.
    Fields without a mapping, or whose mapped label is not in the header,
    resolve to -1. The structure is valid when every required field resolves.

    Args:
        headers: First row of the CSV
        field_mappings: Logical field name -> header label chosen by the client

    Returns:
        StructureValidation with column indexes and missing/found fields
    """
    normalized_headers = [str(header).strip().lower() for header in headers]
    column_indexes = {}
    missing_fields = []

    for field_name in ALL_FIELDS:
        mapped_column = field_mappings.get(field_name)
        index = -1
        if isinstance(mapped_column, str) and mapped_column.strip():
            label = mapped_column.strip().lower()
            if label in normalized_headers:
                index = normalized_headers.index(label)

        column_indexes[field_name] = index
        if index == -1 and field_name in REQUIRED_FIELDS:
            missing_fields.append(field_name)

    found_fields = [name for name, index in column_indexes.items() if index != -1]

    if missing_fields:
        logger.debug(f"CSV structure missing required fields: {missing_fields}")

    return StructureValidation(
        is_valid=not missing_fields,
        column_indexes=column_indexes,
        missing_fields=missing_fields,
        found_fields=found_fields,
    )


def count_data_rows(csv_data: list[list[str]], skip_first_row: bool) -> int:
    """
    Count rows that will be processed.

    Args:
        csv_data: Parsed CSV grid
        skip_first_row: Whether the first row is a header

    Returns:
        Number of data rows
    """
    start = 1 if skip_first_row else 0
    return max(len(csv_data) - start, 0)
