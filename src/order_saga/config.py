"""Runtime configuration for the saga: thresholds, delays and the journal backend."""
import os
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "ORDER_SAGA_"


class SagaConfig(BaseModel):
    low_stock_threshold: int = Field(default=5, ge=0)
    # (min, max) seconds; each shipment draws its own delay from the range.
    ship_delay: Tuple[float, float] = (0.5, 1.5)
    delivery_delay: Tuple[float, float] = (4.0, 6.0)
    delivery_lead_days: int = Field(default=3, ge=0)
    handler_timeout: Optional[float] = Field(default=None, gt=0)
    journal_path: Optional[str] = None

    @field_validator("ship_delay", "delivery_delay")
    @classmethod
    def _check_range(cls, value: Tuple[float, float]) -> Tuple[float, float]:
        low, high = value
        if low < 0 or high < low:
            raise ValueError(f"delay range must satisfy 0 <= min <= max, got {value}")
        return value


def load_config(
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
    prefix: str = ENV_PREFIX,
) -> SagaConfig:
    """
    Builds a `SagaConfig` from `ORDER_SAGA_*` environment variables and explicit
    overrides, overrides winning. Range values are comma separated in the
    environment, e.g. `ORDER_SAGA_SHIP_DELAY=0.5,1.5`.
    """
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    for key, value in environ.items():
        if not key.startswith(prefix):
            continue
        name = key[len(prefix):].lower()
        if name not in SagaConfig.model_fields:
            continue
        values[name] = value.split(",") if "," in value else value
    values.update(overrides or {})
    return SagaConfig.model_validate(values)
