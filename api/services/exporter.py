"""CSV rendering of extracted places."""
import csv
import io
from typing import Any, Dict, List, Sequence, Tuple

from shared.utils import get_utc_now, slugify

# (column label, record field)
EXPORT_FIELDS: List[Tuple[str, str]] = [
    ("Category", "category"),
    ("Name", "name"),
    ("Address", "address"),
    ("Phone", "phone"),
    ("Email", "email"),
    ("Website", "website"),
    ("Rating", "rating"),
    ("Reviews Count", "reviews_count"),
]


class CsvExporter:
    """Renders records to CSV bytes."""

    def render(
        self,
        records: Sequence[Dict[str, Any]],
        fields: Sequence[Tuple[str, str]] = EXPORT_FIELDS
    ) -> bytes:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL)
        writer.writerow([label for label, _ in fields])
        for record in records:
            writer.writerow(["" if record.get(key) is None else record.get(key) for _, key in fields])
        return buffer.getvalue().encode("utf-8")


def export_filename(keyword: str) -> str:
    """Attachment filename for an export of the given keyword."""
    return f"google-maps-{slugify(keyword)}-{int(get_utc_now().timestamp() * 1000)}.csv"
