from flask import request

from errors import ValidationError


def request_data():
    """JSON body if there is one, otherwise the submitted form."""
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    if not isinstance(data, dict):
        raise ValidationError("Expected an object in the request body")
    return data


def int_arg(name, default=None):
    value = request.args.get(name)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"'{name}' must be an integer")


FALSE_STRINGS = ("", "0", "false", "off", "no")


def bool_value(value):
    """Checkbox/flag from JSON or a form post; "false", "0", "off" and "no" are false."""
    if isinstance(value, str):
        return value.strip().lower() not in FALSE_STRINGS
    return bool(value)
