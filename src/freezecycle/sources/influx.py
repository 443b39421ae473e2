"""InfluxDB 2.x raw point source."""

import logging
from datetime import datetime
from typing import Optional

from influxdb_client import InfluxDBClient

from freezecycle.sources.base import RawPoint, SourceUnavailable
from freezecycle.timeutils import ensure_utc

logger = logging.getLogger(__name__)

# Flux record columns that are not sensor fields
_META_COLUMNS = {"_start", "_stop", "_time", "result", "table", "_measurement"}


def _flux_time(value: datetime) -> str:
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class InfluxRawPointSource:
    """Reads pivoted rows of one measurement from an InfluxDB bucket.

    Parameters
    ----------
    config : InternalConfig
        Uses ``config.source`` (url, token, org, bucket, measurement,
        fields, timeout_ms).
    client : InfluxDBClient, optional
        Injected client; built from the config when omitted.
    """

    def __init__(self, config, client: Optional[InfluxDBClient] = None):
        self.source = config.source
        self._client = client or InfluxDBClient(
            url=self.source.url,
            token=self.source.token,
            org=self.source.org,
            timeout=self.source.timeout_ms,
        )
        self._query_api = self._client.query_api()

    def _field_filter(self) -> str:
        return " or ".join(f'r["_field"] == "{name}"' for name in self.source.fields)

    def _query(self, flux: str):
        try:
            return self._query_api.query(flux, org=self.source.org)
        except Exception as e:
            # influxdb-client surfaces HTTP, urllib3 and timeout errors
            # without a common base class
            raise SourceUnavailable(f"InfluxDB query failed: {e}") from e

    def fetch_window(self, start: datetime, end: datetime) -> list:
        logger.info("Influx fetch range: %s → %s", _flux_time(start), _flux_time(end))
        flux = f'''
from(bucket: "{self.source.bucket}")
  |> range(start: {_flux_time(start)}, stop: {_flux_time(end)})
  |> filter(fn: (r) => r["_measurement"] == "{self.source.measurement}")
  |> filter(fn: (r) => {self._field_filter()})
  |> pivot(rowKey: ["_time"], columnKey: ["_field"], valueColumn: "_value")
  |> sort(columns: ["_time"])
'''
        points = []
        for table in self._query(flux):
            for record in table.records:
                fields = {
                    key: value for key, value in record.values.items()
                    if key not in _META_COLUMNS and value is not None
                }
                points.append(RawPoint(timestamp=ensure_utc(record.get_time()), fields=fields))

        points.sort(key=lambda p: p.timestamp)
        return points

    def fetch_earliest_timestamp(self) -> Optional[datetime]:
        flux = f'''
from(bucket: "{self.source.bucket}")
  |> range(start: 0)
  |> filter(fn: (r) => r["_measurement"] == "{self.source.measurement}")
  |> filter(fn: (r) => {self._field_filter()})
  |> first()
  |> keep(columns: ["_time"])
'''
        earliest = None
        for table in self._query(flux):
            for record in table.records:
                ts = ensure_utc(record.get_time())
                if earliest is None or ts < earliest:
                    earliest = ts
        return earliest

    def close(self):
        self._client.close()
