# CronSec v1.0.0

# MIT License
#
# Copyright (c) 2023-2024 Calvin Law
#
# Permission is hereby granted, free of charge, to any person obtaining a
# copy of this software and associated documentation files (the "Software"),
# to deal in the Software without restriction, including without limitation
# the rights to use, copy, modify, merge, publish, distribute, sublicense,
# and/or sell copies of the Software, and to permit persons to whom the
# Software is furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING
# FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS
# IN THE SOFTWARE.

from __future__ import annotations

from collections.abc import Callable
import dataclasses as dc
import datetime as dt
import logging
import re
import time

__all__ = [
    'CronSecError',
    'InvalidExpression',
    'InvalidStartTime',
    'MAX_EXPRESSION_LENGTH',
    'evaluate',
    'expand_segment',
    'is_valid',
    'lint',
]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

class CronSecError(Exception):
    pass

class InvalidExpression(CronSecError, ValueError):
    pass

class InvalidStartTime(CronSecError, ValueError):
    pass

# internal structure
# ********************

MAX_EXPRESSION_LENGTH = 1000

@dc.dataclass(frozen=True)
class _CronField:
    name: str
    bound: tuple[int, int]

# seconds first, a five field expression gets '0' prepended
FIELD_PROPS = [
    _CronField('second', (0, 59)),
    _CronField('minute', (0, 59)),
    _CronField('hour', (0, 23)),
    _CronField('day-of-month', (1, 31)),
    _CronField('month', (1, 12)),
    _CronField('day-of-week', (0, 6)),
]

MAX_DAY_OF_MONTH = [31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31]

_SEGMENT_PATTERN = re.compile(r'\*(/[0-9]+)?|[0-9,/-]+')
_NUMBER_PATTERN = re.compile(r'[0-9]+')
_LEADING_NUMBER_PATTERN = re.compile(r'-?[0-9]+')

# helpers
# --------------------

def _number_from_item(item: str) -> int:
    # int() alone would also take '+1', ' 1' and '1_0'
    if not _NUMBER_PATTERN.fullmatch(item):
        raise InvalidExpression(f"Bad item {item!r}")
    return int(item)

def _leading_number(item: str) -> int:
    # leading integer of a lexically valid item, ex. '2-3' -> 2, '-3' -> -3, '' -> 0
    match = _LEADING_NUMBER_PATTERN.match(item)
    return int(match.group()) if match else 0

def _range_from_item(item: str) -> tuple[int, int]:
    # anything after the second '-' is ignored, ex. '1-2-3' -> (1, 2)
    bounds = item.split('-')
    return _leading_number(bounds[0]), _leading_number(bounds[1])

def _stride_from_segment(segment: str) -> int:
    # anything after the second '/' is ignored, ex. '1-5/2/9' -> 2
    stride_item = segment.split('/')[1]
    if not _NUMBER_PATTERN.fullmatch(stride_item) or int(stride_item) <= 0:
        raise InvalidExpression(f"Bad step {segment!r} - stride must be a whole number of at least 1")
    return int(stride_item)

def _between(value: int, lower: int, upper: int) -> bool:
    return lower <= value <= upper

def _split_segments(expression: str) -> list[str]:
    if not isinstance(expression, str):
        raise InvalidExpression(f"Bad expression - expect a string ({type(expression).__name__} given)")
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise InvalidExpression(f"Bad expression - length exceeds {MAX_EXPRESSION_LENGTH} characters")
    segments = expression.strip().split()
    if len(segments) == 5:
        segments = ['0', *segments]
    elif len(segments) != 6:
        raise InvalidExpression('Bad expression - expect five (5) or six (6) fields separated by whitespace')
    for field, segment in zip(FIELD_PROPS, segments):
        if not _SEGMENT_PATTERN.fullmatch(segment):
            raise InvalidExpression(f"Bad {field.name}")
    return segments

def _expand_segments(segments: list[str]) -> list[list[int]]:
    values = []
    for field, segment in zip(FIELD_PROPS, segments):
        try:
            values.append(expand_segment(segment, *field.bound))
        except InvalidExpression:
            raise InvalidExpression(f"Bad {field.name}") from None
    return values

def _resolve_start(
    start: dt.datetime | float | None,
    tz: dt.tzinfo | None,
    clock: Callable[[], dt.datetime | float] | None,
) -> dt.datetime:
    if start is None:
        # read once, every comparison below uses the same instant
        start = (clock or time.time)()
    if isinstance(start, dt.datetime):
        if start.tzinfo is None and tz is not None:
            start = start.replace(tzinfo=tz)
        tz = tz if tz is not None else start.tzinfo
    elif not isinstance(start, (int, float)) or isinstance(start, bool):
        raise InvalidStartTime(f"Bad start time - expect a unix timestamp or datetime ({start!r} given)")
    try:
        # round trip through the epoch so missing time becomes realizable time
        timestamp = start.timestamp() if isinstance(start, dt.datetime) else start
        return dt.datetime.fromtimestamp(timestamp, tz)
    except (OverflowError, OSError, ValueError):
        raise InvalidStartTime(f"Bad start time - not a representable point in time ({start!r} given)") from None

def _numbers_in_segment(segment: str) -> list[int]:
    # the values a segment names, strides are distances and not field values
    if segment.startswith('*'):
        return []
    if ',' in segment:
        return [_leading_number(item) for item in segment.split(',')]
    base = segment.split('/')[0]
    if '-' in base:
        return list(_range_from_item(base))
    if '/' in segment:
        return []
    return [int(base)]

def _has_calendar_days(days: list[int], months: list[int]) -> bool:
    # days already sorted in ascending order
    return days[0] <= max(MAX_DAY_OF_MONTH[month - 1] for month in months)

# public api
# ********************

def is_valid(expression: str) -> bool:
    """Check that an expression has five or six fields and every step has a stride of at least one.

    Values are not range checked.
    """
    try:
        _expand_segments(_split_segments(expression))
    except InvalidExpression:
        return False
    return True

def expand_segment(segment: str, lower: int, upper: int) -> list[int]:
    """Expand one field of an expression into the ascending values it matches.

    Args:
        segment (str): One of ``*``, ``*/N``, ``A,B,...``, ``A-B/N``, ``A-B`` or ``A``. Any other mix of
          digits, ``-``, ``,`` and ``/`` is read leniently: list items and range bounds by their leading
          integer, and a step base without ``-`` as the whole field (``5/15`` is ``*/15``).
        lower (int): Smallest legal value of the field.
        upper (int): Largest legal value of the field.

    Raises:
        InvalidExpression: The segment has other characters or a stride that is not a whole number of at least one.

    Returns:
        list[int]: Matching values, all within ``lower`` and ``upper``. Out of range numbers are dropped.
    """
    if not isinstance(segment, str) or not _SEGMENT_PATTERN.fullmatch(segment):
        raise InvalidExpression(f"Bad segment {segment!r}")

    # wildcard (ex. *)
    if segment == '*':
        return list(range(lower, upper + 1))

    # list (ex. 1,5,10), items are never ranges or steps
    if ',' in segment:
        numbers = {_leading_number(item) for item in segment.split(',')}
        return sorted(number for number in numbers if _between(number, lower, upper))

    # step (ex. */15 or 10-20/5)
    if '/' in segment:
        stride = _stride_from_segment(segment)
        base = segment.split('/')[0]
        if '-' not in base:
            return list(range(lower, upper + 1, stride))
        range_min, range_max = _range_from_item(base)
        return list(range(max(range_min, lower), min(range_max, upper) + 1, stride))

    # range (ex. 1-5)
    if '-' in segment:
        range_min, range_max = _range_from_item(segment)
        return list(range(max(range_min, lower), min(range_max, upper) + 1))

    # number (ex. 3)
    number = int(segment)
    return [number] if _between(number, lower, upper) else []

def evaluate(
    expression: str,
    start: dt.datetime | float | None = None,
    *,
    tz: dt.tzinfo | None = None,
    clock: Callable[[], dt.datetime | float] | None = None,
) -> list[dt.datetime]:
    """List the instants of the start's minute that the expression triggers on.

    Minute, hour, day-of-month, month and day-of-week must all match. Unlike Vixie cron,
    day-of-month and day-of-week are ANDed even when neither is a wildcard.

    Args:
        expression (str): Five or six field expression, seconds first when six are given.
        start (dt.datetime | float | None, optional): Instant to test, as a datetime or unix timestamp.
          Defaults to the value returned by ``clock``.
        tz (dt.tzinfo | None, optional): Timezone the start is decomposed in. Defaults to the tzinfo of
          a datetime start, otherwise the local time of the process. A naive datetime start is read in
          ``tz`` when given.
        clock (Callable | None, optional): Source of the current time, called at most once.
          Defaults to ``time.time``.

    Raises:
        InvalidExpression: The expression is not well formed.
        InvalidStartTime: The start is not a representable point in time.

    Returns:
        list[dt.datetime]: Start truncated to the minute plus each second of the seconds field,
          ascending. Empty when the start's minute does not match.
    """
    try:
        seconds, minutes, hours, days, months, days_of_week = _expand_segments(_split_segments(expression))
    except InvalidExpression as error:
        logger.debug('Rejected expression %r: %s', expression, error)
        raise
    try:
        moment = _resolve_start(start, tz, clock)
    except InvalidStartTime as error:
        logger.debug('Rejected start time %r: %s', start, error)
        raise

    weekday = moment.isoweekday() % 7 # Sun=0
    if (
        moment.minute in minutes
        and moment.hour in hours
        and moment.day in days
        and moment.month in months
        and weekday in days_of_week
    ):
        # timedelta arithmetic resets fold, go through the epoch to stay on the right side of a clock change
        minute_start = moment.replace(second=0, microsecond=0).timestamp()
        result = [dt.datetime.fromtimestamp(minute_start + second, moment.tzinfo) for second in seconds]
        logger.debug('Expression %r matched %s with %d trigger(s)', expression, moment, len(result))
        return result
    logger.debug('Expression %r did not match %s', expression, moment)
    return []

def lint(expression: str) -> list[str]:
    """Report numbers that fall outside their field, ignored step bases and fields that can never match.

    Raises:
        InvalidExpression: The expression is not well formed.
    """
    segments = _split_segments(expression)
    values = _expand_segments(segments)
    warnings = []
    for field, segment, expanded in zip(FIELD_PROPS, segments, values):
        lower, upper = field.bound
        base = segment.split('/')[0]
        if '/' in segment and ',' not in segment and base != '*' and '-' not in base:
            warnings.append(f"{field.name}: step base {base!r} ignored, counting from {lower}")
        for number in _numbers_in_segment(segment):
            if not _between(number, lower, upper):
                warnings.append(f"{field.name}: value {number} out of range")
        if not expanded:
            warnings.append(f"{field.name}: matches nothing")
    days, months = values[3], values[4]
    if days and months and not _has_calendar_days(days, months):
        warnings.append('Bad expression - results in no triggers')
    return warnings
