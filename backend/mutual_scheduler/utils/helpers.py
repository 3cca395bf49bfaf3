"""
Shared Utility Functions for the Mutual Scheduler

Duration formatting, wall-clock conversions, human-readable labels,
the API error envelope and execution timing for the scheduling engine.
"""

import inspect
import logging
from typing import Dict, Optional, Any, Tuple
from datetime import datetime, time
from functools import wraps

# Configure module logger
logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']

# Request-level time of day filters, as local wall-clock ranges
TIME_OF_DAY_RANGES = {
    'morning': (time(7, 0), time(12, 0)),
    'afternoon': (time(12, 0), time(17, 0)),
    'evening': (time(17, 0), time(22, 0)),
}

# =============================================================================
# Date and Time Utilities
# =============================================================================

def format_duration(minutes: int) -> str:
    """Format duration in minutes to human-readable string"""
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    elif minutes < 1440:  # Less than 24 hours
        hours = minutes // 60
        remaining_minutes = minutes % 60
        if remaining_minutes == 0:
            return f"{hours} hour{'s' if hours != 1 else ''}"
        else:
            return f"{hours} hour{'s' if hours != 1 else ''} and {remaining_minutes} minute{'s' if remaining_minutes != 1 else ''}"
    else:  # Days
        days = minutes // 1440
        remaining_hours = (minutes % 1440) // 60
        if remaining_hours == 0:
            return f"{days} day{'s' if days != 1 else ''}"
        else:
            return f"{days} day{'s' if days != 1 else ''} and {remaining_hours} hour{'s' if remaining_hours != 1 else ''}"


def time_to_minutes(value: time) -> int:
    """Minutes since midnight for a wall-clock time"""
    return value.hour * 60 + value.minute


def minutes_to_time(minutes: int) -> time:
    """Wall-clock time for minutes since midnight (1440 wraps to 00:00)"""
    minutes = minutes % 1440
    return time(minutes // 60, minutes % 60)


def circular_hour_distance(first: float, second: float) -> float:
    """Distance in hours between two clock positions on a 24h dial"""
    diff = abs(first - second) % 24
    return min(diff, 24 - diff)


def time_of_day_label(hour: float) -> str:
    """Coarse period name for a local hour"""
    if 5 <= hour < 12:
        return "morning"
    elif 12 <= hour < 17:
        return "afternoon"
    elif 17 <= hour < 22:
        return "evening"
    return "night"


def time_of_day_range(period: Optional[str]) -> Optional[Tuple[time, time]]:
    """Local wall-clock range for a named period; None or "any" means unrestricted"""
    if period is None or period == 'any':
        return None
    if period not in TIME_OF_DAY_RANGES:
        raise ValueError(
            f"Unknown time of day preference '{period}', expected one of: any, {', '.join(TIME_OF_DAY_RANGES)}"
        )
    return TIME_OF_DAY_RANGES[period]


def weekday_name(weekday: int) -> str:
    """Weekday name using Python's convention (0=Monday)"""
    return WEEKDAY_NAMES[weekday % 7]

# =============================================================================
# Response Envelopes
# =============================================================================

def create_error_response(
    error_message: str,
    error_code: str = "GENERAL_ERROR",
    details: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Create standardized error response"""
    return {
        "success": False,
        "error": {
            "message": error_message,
            "code": error_code,
            "details": details or {},
            "timestamp": datetime.now().isoformat()
        }
    }

# =============================================================================
# Performance Utilities
# =============================================================================

def measure_execution_time(func):
    """Decorator to measure function execution time"""
    @wraps(func)
    async def async_wrapper(*args, **kwargs):
        start_time = datetime.now()
        try:
            result = await func(*args, **kwargs)
            execution_time = (datetime.now() - start_time).total_seconds()
            logger.debug(f"{func.__name__} executed in {execution_time:.3f} seconds")
            return result
        except Exception as e:
            execution_time = (datetime.now() - start_time).total_seconds()
            logger.error(f"{func.__name__} failed after {execution_time:.3f} seconds: {str(e)}")
            raise

    @wraps(func)
    def sync_wrapper(*args, **kwargs):
        start_time = datetime.now()
        try:
            result = func(*args, **kwargs)
            execution_time = (datetime.now() - start_time).total_seconds()
            logger.debug(f"{func.__name__} executed in {execution_time:.3f} seconds")
            return result
        except Exception as e:
            execution_time = (datetime.now() - start_time).total_seconds()
            logger.error(f"{func.__name__} failed after {execution_time:.3f} seconds: {str(e)}")
            raise

    if inspect.iscoroutinefunction(func):
        return async_wrapper
    else:
        return sync_wrapper

# =============================================================================
# Export all utility functions
# =============================================================================

__all__ = [
    # Date/Time utilities
    'format_duration',
    'time_to_minutes',
    'minutes_to_time',
    'circular_hour_distance',
    'time_of_day_label',
    'time_of_day_range',
    'weekday_name',
    'WEEKDAY_NAMES',
    'TIME_OF_DAY_RANGES',

    # Responses
    'create_error_response',

    # Performance
    'measure_execution_time'
]
