"""
Fiddler Receiver - Result Decoder.

============================================================
RESPONSIBILITY
============================================================
Decodes a query result table into metric points.

- First column of every row is the timestamp
- Every other column is a value column
- Header "count" / "value": scalar, one point per row
- Header "<metric-id>,<feature>": one point per row tagged
  with the feature; the metric-id prefix is dropped

============================================================
ERROR ISOLATION
============================================================
- Bad value: that point is dropped
- Bad timestamp or a row that is not a list: that row is dropped
- Fewer than two columns: the result yields nothing
- Zero rows: zero points, not an error

============================================================
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional, Union

from fiddler_receiver.exceptions import DecodeError
from fiddler_receiver.types import MetricPoint, QueryResult, metric_name


logger = logging.getLogger(__name__)


FEATURE_SEPARATOR = ","

_FRACTION = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")

ATTR_MODEL = "model"
ATTR_FEATURE = "feature"


# =============================================================
# COLUMN HEADERS
# =============================================================

@dataclass(frozen=True)
class ScalarColumn:
    """A plain value column such as ``count``."""
    header: str


@dataclass(frozen=True)
class FeatureColumn:
    """A per-feature value column such as ``jsd,creditscore``."""
    header: str
    feature: str


ValueColumn = Union[ScalarColumn, FeatureColumn]


def parse_column_header(header: str) -> ValueColumn:
    """Classify a value column header."""
    _, sep, feature = header.partition(FEATURE_SEPARATOR)
    if sep and feature:
        return FeatureColumn(header=header, feature=feature)
    return ScalarColumn(header=header)


# =============================================================
# CELL PARSING
# =============================================================

def parse_timestamp(value: Any) -> datetime:
    """
    Parse a timestamp cell into an aware UTC datetime.

    Accepts RFC3339 strings (``2021-06-01T00:00:00Z``, any number of
    fractional digits, either letter case), the
    ``YYYY-MM-DD HH:MM:SS`` form, and epoch seconds. Naive values
    are taken as UTC.

    Raises:
        ValueError: If the value is not a timestamp
    """
    if isinstance(value, bool):
        raise ValueError(f"not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if not isinstance(value, str):
        raise ValueError(f"not a timestamp: {value!r}")

    text = value.strip().upper().replace("Z", "+00:00")
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits
    text = _FRACTION.sub(lambda m: m.group(1) + "." + (m.group(2) + "000000")[:6], text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_value(value: Any) -> float:
    """
    Parse a value cell as a float.

    Raises:
        ValueError: If the cell is not a JSON number
    """
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"not a number: {value!r}")
    return float(value)


# =============================================================
# DECODER
# =============================================================

@dataclass
class DecodeOutcome:
    """Points decoded from one result plus the per-point errors."""
    points: List[MetricPoint] = field(default_factory=list)
    errors: List[DecodeError] = field(default_factory=list)


def decode(
    result: QueryResult,
    metric_type: str,
    metric_id: Optional[str] = None,
) -> DecodeOutcome:
    """
    Decode one query result into metric points.

    Args:
        result: Result table for one query key
        metric_type: Type of the metric the query was built for
        metric_id: Id of the metric the query was built for; falls back
            to the metric echoed in the result

    Returns:
        DecodeOutcome with all decodable points
    """
    outcome = DecodeOutcome()

    if not result.data:
        return outcome

    if len(result.col_names) < 2:
        outcome.errors.append(DecodeError(
            message=f"Result {result.query_key} has {len(result.col_names)} columns, need at least 2",
            query_key=result.query_key,
        ))
        return outcome

    name = metric_name(metric_type, metric_id or result.metric)
    columns = [parse_column_header(header) for header in result.col_names[1:]]
    base_attributes = {ATTR_MODEL: result.model.name}

    for row_index, row in enumerate(result.data):
        if not isinstance(row, (list, tuple)):
            outcome.errors.append(DecodeError(
                message=f"Malformed row in {result.query_key}",
                query_key=result.query_key,
                row_index=row_index,
                raw_value=row,
            ))
            continue

        try:
            timestamp = parse_timestamp(row[0] if row else None)
        except (ValueError, OverflowError, OSError) as e:
            outcome.errors.append(DecodeError(
                message=f"Invalid timestamp in {result.query_key}",
                query_key=result.query_key,
                column=result.col_names[0],
                row_index=row_index,
                raw_value=row[0] if row else None,
                original_error=e,
            ))
            continue

        for offset, column in enumerate(columns, start=1):
            raw = row[offset] if offset < len(row) else None
            try:
                value = parse_value(raw)
            except ValueError as e:
                outcome.errors.append(DecodeError(
                    message=f"Invalid value in {result.query_key}",
                    query_key=result.query_key,
                    column=column.header,
                    row_index=row_index,
                    raw_value=raw,
                    original_error=e,
                ))
                continue

            attributes = dict(base_attributes)
            if isinstance(column, FeatureColumn):
                attributes[ATTR_FEATURE] = column.feature

            outcome.points.append(MetricPoint(
                name=name,
                timestamp=timestamp,
                value=value,
                attributes=attributes,
            ))

    if outcome.errors:
        logger.debug(
            f"Dropped {len(outcome.errors)} cells while decoding {result.query_key} "
            f"({len(outcome.points)} points kept)"
        )

    return outcome
