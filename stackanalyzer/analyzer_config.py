import os

import yaml

from . import frames

DEFAULT_BB_CONFIG = "~/.stackbaron.yaml"

# Lines over 16k in length are not parsed.
DEFAULT_MAX_LINE_LENGTH = 16 * 1024
DEFAULT_MAX_UPLOAD_BYTES = 32 * 1024 * 1024
DEFAULT_SIMILARITY = "any_pointer"
DEFAULT_SERVER_HOST = "localhost"
DEFAULT_SERVER_PORT = 5555


def config_file():
    if os.getenv("STACKBARON_CONFIG") is not None:
        return os.getenv("STACKBARON_CONFIG")
    return os.path.expanduser(DEFAULT_BB_CONFIG)


def load_config():
    file = config_file()
    if not os.path.exists(file):
        return {}

    with open(file, "rb") as sjh:
        contents = sjh.read().decode('utf-8')
        config = yaml.safe_load(contents)

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ValueError("Config file '%s' must contain a mapping" % file)
    return config


def get_value(key, env_var, default):
    """Environment variable first, then the config file, then the default"""
    if os.getenv(env_var) is not None:
        return os.getenv(env_var)

    return load_config().get(key, default)


def _get_int(key, env_var, default):
    value = get_value(key, env_var, default)
    try:
        if isinstance(value, str):
            return int(value, 0)
        return int(value)
    except (TypeError, ValueError):
        raise ValueError("'%s' must be an integer, got %r" % (key, value))


def max_line_length():
    value = _get_int("max_line_length", "STACKBARON_MAX_LINE_LENGTH", DEFAULT_MAX_LINE_LENGTH)
    if value <= 0:
        raise ValueError("'max_line_length' must be positive, got %d" % value)
    return value


def max_upload_bytes():
    return _get_int("max_upload_bytes", "STACKBARON_MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES)


def pointer_band():
    floor = _get_int("pointer_floor", "STACKBARON_POINTER_FLOOR", frames.DEFAULT_POINTER_FLOOR)
    ceiling = _get_int("pointer_ceiling", "STACKBARON_POINTER_CEILING",
                       frames.DEFAULT_POINTER_CEILING)
    return frames.PointerBand(floor, ceiling)


def similarity():
    return str(get_value("similarity", "STACKBARON_SIMILARITY", DEFAULT_SIMILARITY))


def server_host():
    return get_value("server_host", "SERVER_HOST", DEFAULT_SERVER_HOST)


def server_port():
    return _get_int("server_port", "SERVER_PORT", DEFAULT_SERVER_PORT)
