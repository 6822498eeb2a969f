# Overview: Flask API routes for the unit-of-measure catalog.

from flask import Blueprint, jsonify

from ..errors import SaleError
from ..services.units_service import get_catalog

units_bp = Blueprint("units", __name__, url_prefix="/api/units")


@units_bp.get("")
def list_units():
    catalog = get_catalog()
    return jsonify({"units": catalog.to_list(), "active": catalog.active_codes()}), 200


@units_bp.post("/<string:code>/toggle")
def toggle_unit(code: str):
    try:
        unit = get_catalog().toggle(code.upper())
    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"code": unit.code, "name": unit.name, "active": unit.active}), 200
