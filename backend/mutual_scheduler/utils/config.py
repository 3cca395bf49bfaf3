"""
Mutual Scheduler Configuration Management
Handles environment variables, engine defaults and API settings
"""

import os
from typing import Optional, Dict, Any
from dataclasses import dataclass, field
from datetime import time
from pathlib import Path
import logging

logger = logging.getLogger(__name__)


def _env_time(name: str, default: str) -> time:
    value = os.getenv(name, default)
    hours, minutes = value.split(':', 1)
    return time(int(hours), int(minutes))


@dataclass
class AvailabilityConfig:
    """Availability calculation defaults"""
    default_day_start: time = time(8, 0)
    default_day_end: time = time(21, 0)
    default_buffer_minutes: int = 15
    default_duration_minutes: int = 60
    range_timezone: str = "UTC"

    @classmethod
    def from_env(cls) -> 'AvailabilityConfig':
        return cls(
            default_day_start=_env_time('SCHEDULER_DEFAULT_DAY_START', '08:00'),
            default_day_end=_env_time('SCHEDULER_DEFAULT_DAY_END', '21:00'),
            default_buffer_minutes=int(os.getenv('SCHEDULER_DEFAULT_BUFFER_MINUTES', '15')),
            default_duration_minutes=int(os.getenv('SCHEDULER_DEFAULT_DURATION_MINUTES', '60')),
            range_timezone=os.getenv('SCHEDULER_RANGE_TIMEZONE', 'UTC')
        )


@dataclass
class PatternConfig:
    """Historical pattern analysis settings"""
    bucket_minutes: int = 30
    min_frequency: float = 0.2
    full_confidence_sample: int = 10
    common_days_limit: int = 3

    @classmethod
    def from_env(cls) -> 'PatternConfig':
        return cls(
            bucket_minutes=int(os.getenv('PATTERN_BUCKET_MINUTES', '30')),
            min_frequency=float(os.getenv('PATTERN_MIN_FREQUENCY', '0.2')),
            full_confidence_sample=int(os.getenv('PATTERN_FULL_CONFIDENCE_SAMPLE', '10')),
            common_days_limit=int(os.getenv('PATTERN_COMMON_DAYS_LIMIT', '3'))
        )


@dataclass
class SuggestionWeights:
    """Weights for the suggestion scoring model"""
    historical_pattern: float = 0.35
    preference_match: float = 0.15
    mutual_convenience: float = 0.2
    duration_fit: float = 0.15
    timezone_fairness: float = 0.15

    @classmethod
    def from_env(cls) -> 'SuggestionWeights':
        return cls(
            historical_pattern=float(os.getenv('WEIGHT_HISTORICAL_PATTERN', '0.35')),
            preference_match=float(os.getenv('WEIGHT_PREFERENCE_MATCH', '0.15')),
            mutual_convenience=float(os.getenv('WEIGHT_MUTUAL_CONVENIENCE', '0.2')),
            duration_fit=float(os.getenv('WEIGHT_DURATION_FIT', '0.15')),
            timezone_fairness=float(os.getenv('WEIGHT_TIMEZONE_FAIRNESS', '0.15'))
        )

    def as_dict(self) -> Dict[str, float]:
        return {
            'historical_pattern': self.historical_pattern,
            'preference_match': self.preference_match,
            'mutual_convenience': self.mutual_convenience,
            'duration_fit': self.duration_fit,
            'timezone_fairness': self.timezone_fairness,
        }


@dataclass
class RankingConfig:
    """Suggestion ranking thresholds"""
    weights: SuggestionWeights = field(default_factory=SuggestionWeights)
    duration_tolerance_minutes: int = 30
    duration_decay_minutes: float = 120.0
    convenience_span_hours: float = 12.0
    reasonable_hours_start: int = 7
    reasonable_hours_end: int = 22
    optimal_threshold: float = 0.8
    min_confidence: float = 0.0
    max_suggestions: int = 5

    @classmethod
    def from_env(cls) -> 'RankingConfig':
        return cls(
            weights=SuggestionWeights.from_env(),
            duration_tolerance_minutes=int(os.getenv('RANKING_DURATION_TOLERANCE_MINUTES', '30')),
            duration_decay_minutes=float(os.getenv('RANKING_DURATION_DECAY_MINUTES', '120')),
            convenience_span_hours=float(os.getenv('RANKING_CONVENIENCE_SPAN_HOURS', '12')),
            reasonable_hours_start=int(os.getenv('RANKING_REASONABLE_HOURS_START', '7')),
            reasonable_hours_end=int(os.getenv('RANKING_REASONABLE_HOURS_END', '22')),
            optimal_threshold=float(os.getenv('RANKING_OPTIMAL_THRESHOLD', '0.8')),
            min_confidence=float(os.getenv('RANKING_MIN_CONFIDENCE', '0.0')),
            max_suggestions=int(os.getenv('RANKING_MAX_SUGGESTIONS', '5'))
        )


@dataclass
class APIConfig:
    """FastAPI Application Configuration"""
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    log_level: str = "INFO"
    batch_concurrency: int = 8

    @classmethod
    def from_env(cls) -> 'APIConfig':
        return cls(
            host=os.getenv('API_HOST', '0.0.0.0'),
            port=int(os.getenv('API_PORT', '8000')),
            debug=os.getenv('DEBUG', 'False').lower() == 'true',
            cors_origins=os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(','),
            log_level=os.getenv('LOG_LEVEL', 'INFO'),
            batch_concurrency=int(os.getenv('API_BATCH_CONCURRENCY', '8'))
        )


@dataclass
class SchedulingConfig:
    """Engine-level configuration passed to every component"""
    availability: AvailabilityConfig = field(default_factory=AvailabilityConfig)
    pattern: PatternConfig = field(default_factory=PatternConfig)
    ranking: RankingConfig = field(default_factory=RankingConfig)

    @classmethod
    def from_env(cls) -> 'SchedulingConfig':
        return cls(
            availability=AvailabilityConfig.from_env(),
            pattern=PatternConfig.from_env(),
            ranking=RankingConfig.from_env()
        )


def validate_scheduling_config(scheduling: SchedulingConfig) -> None:
    """Validate engine configuration values, raising ValueError on problems"""
    errors = []

    availability = scheduling.availability
    if availability.default_day_start >= availability.default_day_end:
        errors.append("default working day must start before it ends")
    if availability.default_buffer_minutes < 0:
        errors.append("default buffer must not be negative")
    if availability.default_duration_minutes <= 0:
        errors.append("default duration must be positive")

    pattern = scheduling.pattern
    if pattern.bucket_minutes <= 0 or 1440 % pattern.bucket_minutes != 0:
        errors.append("bucket_minutes must evenly divide a day")
    if not 0.0 <= pattern.min_frequency <= 1.0:
        errors.append("min_frequency must be within [0, 1]")
    if pattern.full_confidence_sample <= 0:
        errors.append("full_confidence_sample must be positive")

    ranking = scheduling.ranking
    weights = ranking.weights.as_dict()
    if any(weight < 0 for weight in weights.values()):
        errors.append("suggestion weights must not be negative")
    if sum(weights.values()) <= 0:
        errors.append("at least one suggestion weight must be positive")
    if not 0 <= ranking.reasonable_hours_start < ranking.reasonable_hours_end <= 24:
        errors.append("reasonable hours must satisfy 0 <= start < end <= 24")
    if ranking.convenience_span_hours <= 0:
        errors.append("convenience_span_hours must be positive")
    if ranking.duration_decay_minutes <= 0:
        errors.append("duration_decay_minutes must be positive")
    if ranking.max_suggestions <= 0:
        errors.append("max_suggestions must be positive")

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"- {error}" for error in errors)
        logger.error(error_msg)
        raise ValueError(error_msg)


class Config:
    """Main Configuration Manager"""

    def __init__(self, env_path: Optional[Path] = None):
        self.load_environment(env_path)

        # Load all configuration sections
        self.scheduling = SchedulingConfig.from_env()
        self.api = APIConfig.from_env()

        self.validate_config()

    def load_environment(self, env_path: Optional[Path] = None) -> None:
        """Load environment variables from .env file if it exists"""
        env_path = env_path or Path(__file__).parent.parent / 'config' / '.env'

        if env_path.exists():
            with open(env_path, 'r') as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith('#'):
                        key, value = line.split('=', 1)
                        os.environ.setdefault(key, value)
            logger.info(f"Loaded environment from {env_path}")

    def validate_config(self) -> None:
        """Validate critical configuration values"""
        validate_scheduling_config(self.scheduling)

        if self.api.batch_concurrency <= 0:
            error_msg = "Configuration validation failed:\n- API_BATCH_CONCURRENCY must be positive"
            logger.error(error_msg)
            raise ValueError(error_msg)

        logger.debug("Configuration validation passed")

    def is_production(self) -> bool:
        """Check if running in production environment"""
        return os.getenv('ENVIRONMENT', 'development') == 'production'

    def get_log_config(self) -> Dict[str, Any]:
        """Get logging configuration"""
        return {
            'version': 1,
            'disable_existing_loggers': False,
            'formatters': {
                'default': {
                    'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                },
            },
            'handlers': {
                'default': {
                    'formatter': 'default',
                    'class': 'logging.StreamHandler',
                    'stream': 'ext://sys.stdout',
                },
            },
            'root': {
                'level': self.api.log_level,
                'handlers': ['default'],
            },
        }


# Global configuration instance
config = Config()

__all__ = [
    'config',
    'AvailabilityConfig',
    'PatternConfig',
    'SuggestionWeights',
    'RankingConfig',
    'APIConfig',
    'SchedulingConfig',
    'validate_scheduling_config',
    'Config'
]
