"""Credit recommendation from verified findings."""

import math
from typing import Optional

from ecosangam_api.errors import ValidationError
from ecosangam_api.schemas import Findings
from ecosangam_api.settings import Settings, get_settings


def recommend_credits(findings: Findings, settings: Optional[Settings] = None) -> int:
    """Whole tCO2e: floor(area_verified x sequestration rate x crediting period)."""
    settings = settings or get_settings()
    if findings.area_verified <= 0 or findings.carbon_sequestration_rate <= 0:
        return 0
    total = findings.area_verified * findings.carbon_sequestration_rate * settings.crediting_period_years
    if not math.isfinite(total):
        raise ValidationError.single("findings", "credit total is not a finite number")
    # Guard against float artefacts such as 8328.000000001 or 8327.9999999
    return max(0, math.floor(round(total, 6)))
