import csv
from typing import Iterable, Iterator, TextIO

from pydantic import ValidationError

from errors import MalformedRecordError, MissingColumnsError
from models import AccountSnapshot, TransactionRecord

SNAPSHOT_FIELDS = ["client", "available", "held", "total", "locked"]

# DictReader files fields beyond the header under this key
_EXTRA_FIELDS = "__extra__"


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in error.errors()
    )


def read_records(stream: TextIO) -> Iterator[TransactionRecord]:
    """Yield one ``TransactionRecord`` per data row of a CSV stream.

    Header names are trimmed and lowercased; ``tx`` may also be spelled
    ``id``. Any row that cannot be parsed into a record raises
    ``MalformedRecordError``, which is meant to abort the run.
    """
    reader = csv.DictReader(stream, restkey=_EXTRA_FIELDS)
    try:
        fieldnames = reader.fieldnames
    except (csv.Error, UnicodeDecodeError) as e:
        raise MalformedRecordError(1, str(e))
    if fieldnames is None:
        return

    header = [name.strip().lower() for name in fieldnames]
    reader.fieldnames = header
    missing = {"type", "client"} - set(header)
    if "tx" not in header and "id" not in header:
        missing.add("tx")
    if missing:
        raise MissingColumnsError(missing)

    while True:
        try:
            row = next(reader)
        except StopIteration:
            return
        except (csv.Error, UnicodeDecodeError) as e:
            raise MalformedRecordError(reader.line_num, str(e))

        if _EXTRA_FIELDS in row:
            raise MalformedRecordError(reader.line_num, "row has more fields than the header", row)
        try:
            record = TransactionRecord.model_validate(row)
        except ValidationError as e:
            raise MalformedRecordError(reader.line_num, _describe(e), row) from e
        yield record


def write_snapshot(snapshots: Iterable[AccountSnapshot], stream: TextIO) -> None:
    csvwriter = csv.writer(stream, lineterminator="\n")
    csvwriter.writerow(SNAPSHOT_FIELDS)
    for snapshot in snapshots:
        csvwriter.writerow([
            snapshot.client,
            snapshot.available,
            snapshot.held,
            snapshot.total,
            str(snapshot.locked).lower(),
        ])
