#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Collabo Pad Configuration Package
실시간 코어 설정 패키지
"""

from collabo_pad.config.app_settings import (
    AppSettings,
    get_settings,
    reload_settings,
)

__all__ = [
    "AppSettings",
    "get_settings",
    "reload_settings",
]
