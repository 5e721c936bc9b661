"""Batch file readers."""

from .file_reader import BatchFileReader, create_spark_session

__all__ = ["BatchFileReader", "create_spark_session"]
