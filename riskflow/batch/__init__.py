"""
Spark batch ingestion.
"""

from .readers import BatchFileReader, create_spark_session

__all__ = ["BatchFileReader", "create_spark_session"]
