# office_api/common/http.py
from flask import jsonify


def ok(data=None, status=200, message=None, **meta):
    payload = {"success": True, "data": data}
    if message:
        payload["message"] = message
    if meta:
        payload["meta"] = meta
    return jsonify(payload), status


def fail(message="Bad Request", status=400, code=None, errors=None):
    payload = {"success": False, "message": message}
    if code: payload["code"] = code
    if errors: payload["errors"] = errors
    return jsonify(payload), status
