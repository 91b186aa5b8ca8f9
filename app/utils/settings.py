"""Helpers for reading portal settings and normalizing section identifiers.

Feature toggles live in a single ``AdminSetting`` row; when the row does not
exist the defaults (everything enabled) apply. Route handlers read the toggles
here and pass them on explicitly, so the calculation modules never touch the
database for settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from flask import current_app

from app.extensions import db
from app.utils.constants import DEFAULT_SECTION
from app.utils.errors import RequestValidationError
from app.utils.progress import Thresholds

_TOGGLE_KEYS = ("overridesEnabled", "redemptionRequestsEnabled")


@dataclass(frozen=True)
class FeatureToggles:
    overrides_enabled: bool = True
    redemption_requests_enabled: bool = True

    def to_dict(self):
        return {
            "overridesEnabled": self.overrides_enabled,
            "redemptionRequestsEnabled": self.redemption_requests_enabled,
        }


def normalize_section(section_value: Optional[str]) -> str:
    """Return a trimmed section id, or the default section for blanks."""

    if not section_value:
        return DEFAULT_SECTION

    cleaned = str(section_value).strip()
    return cleaned or DEFAULT_SECTION


def get_thresholds() -> Thresholds:
    """Qualification thresholds from the app config."""
    return Thresholds(
        min_minutes=current_app.config["MIN_DAILY_MINUTES"],
        min_topics=current_app.config["MIN_DAILY_TOPICS"],
    )


def _get_settings_row(create: bool = False):
    from app.models import AdminSetting  # Imported lazily to avoid circular import

    settings_row = AdminSetting.query.order_by(AdminSetting.id).first()
    if settings_row is None and create:
        settings_row = AdminSetting()
        db.session.add(settings_row)
        # Note: caller is responsible for committing the session
    return settings_row


def get_feature_toggles() -> FeatureToggles:
    """Return the current toggles, falling back to defaults when no row exists."""
    settings_row = _get_settings_row()
    if settings_row is None:
        return FeatureToggles()
    return FeatureToggles(
        overrides_enabled=settings_row.overrides_enabled,
        redemption_requests_enabled=settings_row.redemption_requests_enabled,
    )


def update_feature_toggles(data: Mapping) -> FeatureToggles:
    """Apply the toggles present in ``data`` (camelCase keys) and commit.

    Keys that are absent keep their current value. Present keys must be JSON
    booleans; the row is left untouched when any of them is not.
    """
    for key in _TOGGLE_KEYS:
        if key in data and not isinstance(data[key], bool):
            raise RequestValidationError(f"{key} must be true or false")

    settings_row = _get_settings_row(create=True)

    if "overridesEnabled" in data:
        settings_row.overrides_enabled = data["overridesEnabled"]
    if "redemptionRequestsEnabled" in data:
        settings_row.redemption_requests_enabled = data["redemptionRequestsEnabled"]

    db.session.commit()
    return FeatureToggles(
        overrides_enabled=settings_row.overrides_enabled,
        redemption_requests_enabled=settings_row.redemption_requests_enabled,
    )
