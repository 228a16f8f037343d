"""
Exclusive theme activation.

Switching the active theme is two separately committed updates:

    (a) is_active = false on every theme
    (b) is_active = true on the target

They run strictly in that order. A failure in (a) leaves the previous theme
active; a failure in (b) leaves no theme active and is reported as
PartialActivationFailure so the caller can rerun (b) alone via
complete_activation().

No locking is applied: two concurrent activations interleave and the one
whose step (b) lands last wins.
"""

import logging
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront import storage
from storefront.errors import (
    NotFound,
    PartialActivationFailure,
    ThemeDeactivationFailure,
    UpstreamFailure,
    ValidationError,
)
from storefront.metrics import record_theme_activation

logger = logging.getLogger(__name__)


class ActivationState(str, Enum):
    PENDING = "pending"
    DEACTIVATED = "deactivated"
    ACTIVATED = "activated"
    FAILED = "failed"
    PARTIAL = "partial"


class ThemeActivationManager:
    def __init__(self, db: Session, require_existing: bool = False):
        self.db = db
        self.require_existing = require_existing
        self.state = ActivationState.PENDING

    def activate(self, theme_id: str) -> None:
        if not theme_id:
            raise ValidationError("Theme ID is required")

        if self.require_existing:
            try:
                exists = storage.theme_exists(self.db, theme_id)
            except SQLAlchemyError as e:
                logger.error(f"Error looking up theme {theme_id}: {e}")
                self.state = ActivationState.FAILED
                record_theme_activation("failed")
                raise UpstreamFailure("Failed to activate theme")
            if not exists:
                record_theme_activation("not_found")
                raise NotFound("Theme not found")

        try:
            storage.deactivate_all_themes(self.db)
        except SQLAlchemyError as e:
            logger.error(f"Error deactivating themes: {e}")
            self.state = ActivationState.FAILED
            record_theme_activation("failed")
            raise ThemeDeactivationFailure("Failed to deactivate themes")
        self.state = ActivationState.DEACTIVATED

        self.complete_activation(theme_id)

    def complete_activation(self, theme_id: str) -> None:
        """Step (b) only: mark theme_id active."""
        if not theme_id:
            raise ValidationError("Theme ID is required")
        try:
            matched = storage.set_theme_active(self.db, theme_id)
        except SQLAlchemyError as e:
            logger.error(f"Error activating theme {theme_id}: {e}")
            self.state = ActivationState.PARTIAL
            record_theme_activation("partial")
            raise PartialActivationFailure(theme_id)

        if matched == 0:
            logger.warning(f"Theme {theme_id} matched no rows; no theme is active")
        self.state = ActivationState.ACTIVATED
        record_theme_activation("activated")
        logger.info(f"Theme activated: {theme_id}")
