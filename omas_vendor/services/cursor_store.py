"""
Cursor Store — Persistent poll cursor (page token).
====================================================

One opaque page token per polled resource path, kept in
{data_dir}/poll-orders.<parent>.token. Written atomically; an empty string is
the valid "start from the beginning" value.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Optional

from omas_vendor.config import settings
from omas_vendor.core.atomic_io import atomic_write_text, read_text_or_none

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def cursor_file_name(parent: str) -> str:
    """vendors/demo-vendor -> poll-orders.vendors_demo-vendor.token"""
    return f"poll-orders.{_UNSAFE.sub('_', parent).strip('_')}.token"


class CursorStore:
    def __init__(
        self,
        parent: Optional[str] = None,
        path: Optional[str] = None,
        data_dir: Optional[str] = None,
    ):
        self._parent = parent or settings.vendor_parent
        data_dir = data_dir or settings.data_dir
        self._path = Path(path or os.path.join(data_dir, cursor_file_name(self._parent)))

    @property
    def parent(self) -> str:
        return self._parent

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> str:
        try:
            token = read_text_or_none(self._path)
        except UnicodeDecodeError:
            logger.error("Poll cursor file %s is not valid UTF-8 — polling from the beginning", self._path)
            return ""
        if token is None:
            logger.info("No poll cursor for %s — polling from the beginning", self._parent)
            return ""
        return token.strip()

    def save(self, page_token: str) -> None:
        atomic_write_text(self._path, page_token)
        logger.debug("Poll cursor for %s saved", self._parent)
