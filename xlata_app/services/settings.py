# xlata_app/services/settings.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from ..extensions import db
from ..models import Setting

def get_setting(key: str, group: str = "webhooks", default: str = "") -> str:
    s = Setting.query.filter_by(group=group, key=key).first()
    return s.value if s and s.value else default

def set_setting(key: str, value: str, group: str = "webhooks", updated_by: str | None = None) -> Setting:
    s = Setting.query.filter_by(group=group, key=key).first()
    if not s:
        s = Setting(group=group, key=key, value=value, updated_by=updated_by)
        db.session.add(s)
    else:
        s.value = value
        s.updated_by = updated_by
    db.session.commit()
    return s
