from datetime import datetime, timezone
from typing import Optional, Dict

from sqlalchemy.orm import Session

from ..config import settings
from ..errors import ValidationError
from ..models.models import SystemConfig


DEFAULT_CONFIG_KEY = "default"


def get_system_config(db: Session, config_key: str = DEFAULT_CONFIG_KEY) -> SystemConfig:
    """Stored config row, or an unsaved one carrying the settings defaults."""
    config = db.query(SystemConfig).filter(SystemConfig.config_key == config_key).first()
    if config is None:
        config = SystemConfig(
            config_key=config_key,
            grace_period_minutes=settings.grace_period_min_default,
            min_clock_interval_hours=settings.min_clock_interval_hours_default,
            other_settings={},
        )
    return config


def update_system_config(
    db: Session,
    grace_period_minutes: Optional[int] = None,
    min_clock_interval_hours: Optional[int] = None,
    other_settings: Optional[Dict] = None,
    config_key: str = DEFAULT_CONFIG_KEY,
) -> SystemConfig:
    if grace_period_minutes is not None and grace_period_minutes < 0:
        raise ValidationError("grace_period_minutes must be zero or positive")
    if min_clock_interval_hours is not None and min_clock_interval_hours < 0:
        raise ValidationError("min_clock_interval_hours must be zero or positive")

    config = get_system_config(db, config_key)
    if config.id is None:
        db.add(config)
    if grace_period_minutes is not None:
        config.grace_period_minutes = grace_period_minutes
    if min_clock_interval_hours is not None:
        config.min_clock_interval_hours = min_clock_interval_hours
    if other_settings is not None:
        merged = dict(config.other_settings or {})
        merged.update(other_settings)
        config.other_settings = merged
    config.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(config)
    return config


def config_to_dict(config: SystemConfig) -> Dict:
    return {
        "config_key": config.config_key,
        "grace_period_minutes": config.grace_period_minutes,
        "min_clock_interval_hours": config.min_clock_interval_hours,
        "other_settings": config.other_settings or {},
    }
