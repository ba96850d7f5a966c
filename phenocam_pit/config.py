# Optional operator configuration. A YAML file can override the SSH login,
# the upload servers per network and the colour defaults, e.g.
#
#   ssh_user: admin
#   ssh_port: 22
#   servers:
#     phenocam: [phenocam.nau.edu]
#     icos: [icos01.uantwerpen.be, backup.example.org]
#   colours:
#     saturation: 110

import os

import yaml

from . import constants
from .errors import SettingsError

CONFIG_PATH = os.environ.get("PIT_CONFIG", os.path.expanduser("~/.pit.yaml"))


def load_cfg(path=None) -> dict:
    """Read the YAML config, an absent default file yields an empty dict."""
    explicit = path is not None
    path = path or CONFIG_PATH
    if not os.path.exists(path):
        if explicit:
            raise SettingsError(f"config file not found: {path}")
        return {}
    try:
        with open(path, "r") as f:
            cfg = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise SettingsError(f"could not parse {path}: {e}")
    if not isinstance(cfg, dict):
        raise SettingsError(f"{path} must contain a mapping")
    return check_cfg(cfg)


def _section(cfg, key):
    value = (cfg or {}).get(key) or {}
    if not isinstance(value, dict):
        raise SettingsError(f"'{key}' in the config must be a mapping")
    return value


def _integer(key, value):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise SettingsError(f"'{key}' in the config must be a number, got '{value}'")


def servers_for(network, cfg=None) -> list:
    servers = _section(cfg, "servers").get(network)
    if servers is None:
        return [constants.NETWORKS[network]]
    if isinstance(servers, str):
        servers = [servers]
    if not isinstance(servers, list):
        raise SettingsError(f"servers for '{network}' must be a hostname or a list of them")
    return [str(s).strip() for s in servers if str(s).strip()]


def colour_overrides(cfg=None) -> dict:
    colours = _section(cfg, "colours")
    unknown = set(colours) - set(constants.DEFAULT_COLOURS)
    if unknown:
        raise SettingsError(f"unknown colour settings: {', '.join(sorted(unknown))}")
    return {key: _integer(key, value) for key, value in colours.items()}


def ssh_login(cfg=None):
    cfg = cfg or {}
    return (
        str(cfg.get("ssh_user", constants.SSH_USER)),
        _integer("ssh_port", cfg.get("ssh_port", constants.SSH_PORT)),
    )


def check_cfg(cfg) -> dict:
    """Raise SettingsError for any malformed value, before a session is opened."""
    for network in constants.NETWORKS:
        servers_for(network, cfg)
    colour_overrides(cfg)
    ssh_login(cfg)
    return cfg
