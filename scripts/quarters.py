"""Calendar-quarter bucketing of metric time series."""

import bisect
import json
import logging
from datetime import date, datetime, timedelta, timezone

log = logging.getLogger(__name__)

QUARTERS_IN_YEAR = 4
# Longer than any quarter (92 days max), shorter than two.
QUARTER_STEP = timedelta(days=93)


class QuarterStoreError(Exception):
    """Base error for quarter store operations."""


class QuarterNotFound(QuarterStoreError, KeyError):
    """No bucket exists for the requested quarter."""


class MalformedDate(QuarterStoreError, ValueError):
    """Date value cannot be resolved to a calendar day."""


class DegenerateAggregation(QuarterStoreError):
    """Not enough quarters for a full trailing-year window."""


def to_day(value) -> date:
    """Normalize a date string, epoch timestamp, date or datetime to a UTC calendar day."""
    if isinstance(value, str):
        try:
            parts = [int(p) for p in value.strip().split("-")]
            if len(parts) > 3:
                raise ValueError("too many date parts")
            return date(*(parts + [1, 1])[:3])
        except (TypeError, ValueError) as e:
            raise MalformedDate(f"Invalid date: {value!r}") from e
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(timezone.utc).date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc).date()
        except (OverflowError, OSError, ValueError) as e:
            raise MalformedDate(f"Timestamp out of range: {value!r}") from e
    raise MalformedDate(f"Unsupported date value: {value!r}")


def quarter_start(day: date) -> datetime:
    """First instant of the quarter containing day."""
    first_month = 3 * ((day.month - 1) // 3) + 1
    return datetime(day.year, first_month, 1, tzinfo=timezone.utc)


def quarter_end(day: date) -> datetime:
    """Last second of the quarter containing day."""
    start = quarter_start(day)
    if start.month == 10:
        following = start.replace(year=start.year + 1, month=1)
    else:
        following = start.replace(month=start.month + 3)
    return following - timedelta(seconds=1)


def date_to_start(value) -> int:
    """Timestamp of the beginning of the quarter containing value."""
    return int(quarter_start(to_day(value)).timestamp())


def build_quarters_intervals(from_=None, to=None, now: datetime = None) -> list[tuple[int, int]]:
    """Build quarter intervals covering [from_, to]; partial quarters are expanded.

    from_ defaults to one year before now, to defaults to now. Returns
    (start, end) timestamp pairs, both inclusive. An inverted range gives [].
    """
    if now is None:
        now = datetime.now(timezone.utc)
    today = to_day(now)
    if to is None:
        to = today
    if from_ is None:
        # Only the quarter matters, so the first of the month avoids Feb 29.
        from_ = date(today.year - 1, today.month, 1)

    interval_start = int(quarter_start(to_day(from_)).timestamp())
    finish = int(quarter_end(to_day(to)).timestamp())
    intervals = []

    while interval_start <= finish:
        interval_end = int(quarter_end(to_day(interval_start)).timestamp())
        intervals.append((interval_start, interval_end))
        interval_start = interval_end + 1

    return intervals


class QuarterStore:
    """Metric containers keyed by quarter start timestamp.

    data_cls is a MetricsContainer subclass; a zeroed instance is created
    the first time a quarter is touched and is never replaced afterwards.
    """

    def __init__(self, data_cls):
        self.data_cls = data_cls
        self.quarters = {}
        self._keys = []
        created_at = datetime.now(timezone.utc)
        self.start_date = created_at
        self.end_date = created_at

    def __repr__(self):
        return f"QuarterStore({self.data_cls.__name__}, quarters={len(self)})"

    def __len__(self):
        return len(self._keys)

    def __contains__(self, value):
        return date_to_start(value) in self.quarters

    def __getitem__(self, value):
        return self.find_or_create(value)

    def keys(self) -> list[int]:
        return list(self._keys)

    def fetch(self, value):
        """Strict lookup of the quarter containing value."""
        key = date_to_start(value)
        try:
            return self.quarters[key]
        except KeyError:
            raise QuarterNotFound(f"No quarter starting at {key} for {value!r}") from None

    def find_or_create(self, value):
        """Return the quarter containing value, creating an empty one if needed."""
        key = date_to_start(value)
        quarter = self.quarters.get(key)
        if quarter is None:
            quarter = self.data_cls()
            self.quarters[key] = quarter
            bisect.insort(self._keys, key)
            log.debug(f"Created {self.data_cls.__name__} quarter {key}")
        return quarter

    def fullfill(self):
        """Fill missing quarters between the first and last ones and fix the store bounds.

        Should be called once all data is gathered, before presentation.
        """
        if not self._keys:
            return

        first, last = self._keys[0], self._keys[-1]
        before = len(self)
        period = first
        while period <= last:
            self.find_or_create(period)
            # Step from the quarter start so drift never skips a quarter.
            stepped = datetime.fromtimestamp(period, tz=timezone.utc) + QUARTER_STEP
            period = date_to_start(stepped)

        if len(self) != before:
            log.debug(f"Filled {len(self) - before} empty quarters")
        self.start_date = datetime.fromtimestamp(first, tz=timezone.utc)
        self.end_date = datetime.fromtimestamp(last, tz=timezone.utc)

    def last_year_as_hash(self, offset: int = 1, strict: bool = False) -> dict:
        """Metrics aggregated over the four quarters ending offset quarters before the latest.

        Aggregated metrics are averaged, the rest are summed.
        """
        size = QUARTERS_IN_YEAR + offset
        if size < 0:
            raise ValueError(f"Offset too small: {offset}")
        if len(self) < size:
            message = f"Only {len(self)} quarters for a last year window of {size}"
            if strict:
                raise DegenerateAggregation(message)
            log.warning(message)

        window = self._keys[max(len(self) - size, 0):][:QUARTERS_IN_YEAR]
        columns = zip(*(self.quarters[key].metric_values() for key in window))
        sums = [sum(column) for column in columns]
        metrics = self.data_cls.metrics()
        sums += [0] * (len(metrics) - len(sums))

        last_year_metrics = dict(zip(metrics, sums))
        for metric in self.data_cls.aggregated_metrics():
            last_year_metrics[metric] /= 4.0

        return last_year_metrics

    def last_year_data(self, offset: int = 1, strict: bool = False) -> list:
        return list(self.last_year_as_hash(offset, strict).values())

    def preview(self) -> list[tuple[datetime, object]]:
        """Sorted (quarter start time, quarter) pairs."""
        return [(datetime.fromtimestamp(key, tz=timezone.utc), self.quarters[key]) for key in self._keys]

    def each_sorted(self, fn) -> list:
        return [fn(key, self.quarters[key]) for key in self._keys]

    def reverse_each_sorted(self, fn) -> list:
        return [fn(key, self.quarters[key]) for key in reversed(self._keys)]

    def quarters_intervals(self, now: datetime = None):
        """Yield (start, finish) windows still worth querying.

        Uses known quarters followed by the end of the current quarter, or the
        trailing year when the store is empty.
        """
        if not self._keys:
            yield from build_quarters_intervals(now=now)
            return

        if now is None:
            now = datetime.now(timezone.utc)
        bounds = self._keys + [int(quarter_end(to_day(now)).timestamp())]
        yield from zip(bounds, bounds[1:])

    def with_quarters_intervals(self, fn, now: datetime = None):
        # Materialized first, callers usually create quarters inside fn.
        for start, finish in list(self.quarters_intervals(now)):
            fn(start, finish)

    def to_mapping(self) -> dict:
        return {str(key): self.quarters[key].to_mapping() for key in self._keys}

    def to_json(self) -> str:
        """JSON object of quarter start timestamps to quarter metrics."""
        return json.dumps(self.to_mapping())

    @classmethod
    def from_mapping(cls, mapping: dict, data_cls):
        store = cls(data_cls)
        for key, values in mapping.items():
            key = date_to_start(int(key))
            if key in store.quarters:
                raise QuarterStoreError(f"Duplicate quarter {key}")
            store.quarters[key] = data_cls.from_mapping(values)
            bisect.insort(store._keys, key)
        return store

    @classmethod
    def from_json(cls, text: str, data_cls):
        return cls.from_mapping(json.loads(text), data_cls)
