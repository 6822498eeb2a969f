# Overview: Unit-of-measure catalog; process-wide configuration loaded at startup, saved on change.

"""
Unit-of-measure catalog.

A static list of unit codes, each switchable on/off. Products may only use
active units. The catalog is configuration, not a table: it is loaded once
when the app is created (from UNITS_CONFIG_PATH when that file exists,
otherwise the defaults), saved back on every change, and reached through
app.extensions["units"].
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass

from flask import current_app

from ..errors import NotFound


@dataclass
class UnitConfig:
    code: str
    name: str
    active: bool


DEFAULT_UNITS = [
    UnitConfig("UNID", "Unit", True),
    UnitConfig("KG", "Kilogram", True),
    UnitConfig("LT", "Liter", True),
    UnitConfig("MT", "Meter", True),
    UnitConfig("CX", "Box", True),
    UnitConfig("PAR", "Pair", True),
    UnitConfig("PC", "Piece", True),
    UnitConfig("DZ", "Dozen", False),
    UnitConfig("ML", "Milliliter", False),
    UnitConfig("G", "Gram", False),
]


class UnitCatalog:
    def __init__(self, units: list[UnitConfig], path: str | None = None):
        self.path = path
        self._units = [UnitConfig(u.code, u.name, u.active) for u in units]

    @classmethod
    def load(cls, path: str | None = None) -> "UnitCatalog":
        if path and os.path.exists(path):
            with open(path, "r", encoding="utf-8") as fh:
                rows = json.load(fh)
            units = [UnitConfig(str(r["code"]), str(r.get("name") or r["code"]), bool(r.get("active", True))) for r in rows]
            return cls(units, path)
        return cls(DEFAULT_UNITS, path)

    def save(self) -> None:
        if not self.path:
            return
        with open(self.path, "w", encoding="utf-8") as fh:
            json.dump(self.to_list(), fh, indent=2)

    def all(self) -> list[UnitConfig]:
        return list(self._units)

    def active_codes(self) -> list[str]:
        return [u.code for u in self._units if u.active]

    def get(self, code: str) -> UnitConfig | None:
        for unit in self._units:
            if unit.code == code:
                return unit
        return None

    def is_active(self, code: str) -> bool:
        unit = self.get(code)
        return bool(unit and unit.active)

    def toggle(self, code: str) -> UnitConfig:
        unit = self.get(code)
        if unit is None:
            raise NotFound(f"Unit {code} not found", details={"code": code})
        unit.active = not unit.active
        self.save()
        return unit

    def to_list(self) -> list[dict]:
        return [asdict(u) for u in self._units]


def init_app(app) -> UnitCatalog:
    catalog = UnitCatalog.load(app.config.get("UNITS_CONFIG_PATH"))
    app.extensions["units"] = catalog
    return catalog


def get_catalog() -> UnitCatalog:
    return current_app.extensions["units"]
