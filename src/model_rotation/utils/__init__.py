from .timestamps import format_timestamp, parse_timestamp, utc_now

__all__ = ['format_timestamp', 'parse_timestamp', 'utc_now']
