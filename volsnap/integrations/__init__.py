# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI admin endpoints.
"""

from volsnap.integrations.fastapi import (
    setup_backup_plugin,
    register_backup_routes,
    verify_api_key,
)

__all__ = [
    "setup_backup_plugin",
    "register_backup_routes",
    "verify_api_key",
]
