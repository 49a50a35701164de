# system_settings.py
"""Key/value shop settings with typed getters.

Deposit policy reads its threshold, percentage and on/off switch from here on
every analysis call; nothing is cached.
"""
from decimal import Decimal, InvalidOperation

import structlog

from core import db, SystemSetting, DEPOSIT_DEFAULTS
from order_logic import DepositSettings

logger = structlog.get_logger()


class SettingsRepository:
    def __init__(self, session=None):
        self.session = session or db.session

    def get(self, key):
        setting = self.session.execute(
            db.select(SystemSetting).filter_by(key=key)
        ).scalar_one_or_none()
        if setting is None or not setting.is_active or not setting.value:
            return None
        return setting.value

    def get_number(self, key, default=Decimal("0")):
        value = self.get(key)
        if value is None:
            return Decimal(default)
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            logger.warning("setting_not_a_number", key=key, value=value)
            return Decimal(default)
        if not number.is_finite():
            return Decimal(default)
        return number

    def get_boolean(self, key, default=False):
        value = self.get(key)
        if value is None:
            return default
        return value.strip().lower() == "true"

    def get_deposit_settings(self) -> DepositSettings:
        min_amount = self.get_number("deposit.min_amount", DEPOSIT_DEFAULTS["deposit.min_amount"][0])
        percentage = self.get_number("deposit.percentage", DEPOSIT_DEFAULTS["deposit.percentage"][0])
        enabled = self.get_boolean("deposit.enabled", True)
        return DepositSettings(min_amount=min_amount, percentage=percentage / 100, enabled=enabled)

    def update(self, key, value, type="string", category="general", description=None):
        setting = self.session.execute(
            db.select(SystemSetting).filter_by(key=key)
        ).scalar_one_or_none()
        if setting is None:
            setting = SystemSetting(key=key, value=str(value), type=type, category=category,
                                    description=description, is_active=True)
            self.session.add(setting)
            logger.info("setting_created", key=key, value=str(value))
        else:
            setting.value = str(value)
            setting.type = type
            setting.category = category
            if description is not None:
                setting.description = description
            logger.info("setting_updated", key=key, value=str(value))
        self.session.commit()
        return setting

    def initialize_deposit_settings(self):
        created = []
        for key, (value, type_, description) in DEPOSIT_DEFAULTS.items():
            exists = self.session.execute(
                db.select(SystemSetting).filter_by(key=key)
            ).scalar_one_or_none()
            if exists is None:
                self.session.add(SystemSetting(key=key, value=value, type=type_, category="payment",
                                               description=description, is_active=True))
                created.append(key)
        if created:
            self.session.commit()
            logger.info("default_settings_created", keys=created)
        return created

    def all(self, category=None):
        query = db.select(SystemSetting)
        if category:
            query = query.filter_by(category=category)
        query = query.order_by(SystemSetting.category, SystemSetting.key)
        return self.session.execute(query).scalars().all()
