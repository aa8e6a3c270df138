from influxdb_client_3 import Point, WritePrecision

from .db_client import SDMClient, WriteResult

__all__ = ["SDMClient", "WriteResult", "Point", "WritePrecision"]
