"""
Spark file reader producing pipeline inputs.

Reads loan/telemetry tapes and reference tables from CSV, JSON or Parquet
and converts the rows into RawRecords and ReferenceValues. CSV values are
read as strings; typing is left to the validator.
"""

from collections.abc import Iterable
from typing import Any

from pyspark.sql import DataFrame, Row, SparkSession
from pyspark.sql.types import StructType

from riskflow.core.models import RawRecord, ReferenceValue
from riskflow.observability.logger import get_logger
from riskflow.utils.timestamps import parse_timestamp

logger = get_logger(__name__)

SUPPORTED_FORMATS = ("csv", "json", "parquet")
CORRUPT_RECORD_COLUMN = "_corrupt_record"


class BatchFileReader:
    """
    Reads batch files with Spark.
    """

    def __init__(
        self,
        spark: SparkSession,
        identifier_column: str = "identifier",
        timestamp_column: str = "timestamp",
    ):
        """
        Initialize file reader.

        Args:
            spark: Active Spark session
            identifier_column: Column holding the record identifier
            timestamp_column: Column holding the observation timestamp
        """
        self.spark = spark
        self.identifier_column = identifier_column
        self.timestamp_column = timestamp_column

    def read_dataframe(
        self,
        file_path: str,
        file_format: str = "csv",
        schema: StructType | None = None,
        delimiter: str = ",",
    ) -> DataFrame:
        """
        Read a file into a Spark DataFrame.

        Raises:
            ValueError: If file format is unsupported
        """
        file_format = file_format.lower()
        if file_format not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported file format: {file_format}")

        reader = self.spark.read
        if schema:
            reader = reader.schema(schema)

        if file_format == "csv":
            return reader \
                .option("header", "true") \
                .option("inferSchema", "false") \
                .option("delimiter", delimiter) \
                .option("mode", "PERMISSIVE") \
                .csv(file_path)
        if file_format == "json":
            return reader.json(file_path)
        return reader.parquet(file_path)

    def read_records(self, file_path: str, file_format: str = "csv", source: str | None = None) -> list[RawRecord]:
        """
        Read a record file into RawRecords.

        Args:
            file_path: Path to the file
            file_format: csv, json or parquet
            source: Source tag (defaults to the file path)
        """
        df = self.read_dataframe(file_path, file_format)
        records = self.rows_to_records(df.collect(), source or file_path)
        logger.info(
            f"Read {len(records)} records from {file_path}",
            extra={"file_path": file_path, "file_format": file_format},
        )
        return records

    def read_reference(
        self,
        file_path: str,
        file_format: str = "csv",
        geography_column: str = "geography",
        effective_column: str = "effective_at",
    ) -> list[ReferenceValue]:
        """
        Read a reference table into ReferenceValues.

        Every column other than geography and effective time is an indicator.
        """
        df = self.read_dataframe(file_path, file_format)
        values = self.rows_to_reference(df.collect(), geography_column, effective_column)
        logger.info(
            f"Read {len(values)} reference values from {file_path}",
            extra={"file_path": file_path, "file_format": file_format},
        )
        return values

    def rows_to_records(self, rows: Iterable[Row | dict[str, Any]], source: str) -> list[RawRecord]:
        """
        Convert rows to RawRecords.

        Raises:
            ValueError: If a row lacks its identifier or timestamp
        """
        records = []
        for position, row in enumerate(rows, start=1):
            data = row.asDict() if isinstance(row, Row) else dict(row)
            data.pop(CORRUPT_RECORD_COLUMN, None)

            identifier = data.pop(self.identifier_column, None)
            timestamp = data.pop(self.timestamp_column, None)
            if identifier in (None, "") or timestamp in (None, ""):
                raise ValueError(
                    f"Row {position} has no {self.identifier_column} or {self.timestamp_column}"
                )
            records.append(
                RawRecord(
                    identifier=str(identifier).strip(),
                    timestamp=parse_timestamp(timestamp),
                    fields=data,
                    source=source,
                )
            )
        return records

    @staticmethod
    def rows_to_reference(
        rows: Iterable[Row | dict[str, Any]],
        geography_column: str = "geography",
        effective_column: str = "effective_at",
    ) -> list[ReferenceValue]:
        """
        Convert rows to ReferenceValues; empty indicator cells are skipped.

        Raises:
            ValueError: If an indicator value is not numeric
        """
        values = []
        for row in rows:
            data = row.asDict() if isinstance(row, Row) else dict(row)
            data.pop(CORRUPT_RECORD_COLUMN, None)
            geography = str(data.pop(geography_column)).strip()
            effective_at = parse_timestamp(data.pop(effective_column))
            indicators = {
                name: float(value)
                for name, value in data.items()
                if value not in (None, "")
            }
            values.append(ReferenceValue(geography=geography, effective_at=effective_at, values=indicators))
        return values


def create_spark_session(app_name: str = "riskflow") -> SparkSession:
    """Create a local Spark session for batch reads."""
    return SparkSession.builder \
        .appName(app_name) \
        .master("local[*]") \
        .config("spark.sql.adaptive.enabled", "true") \
        .config("spark.sql.session.timeZone", "UTC") \
        .getOrCreate()
