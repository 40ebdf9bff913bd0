import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Central config loader. Simple singleton so the rest of the code can just do:
#   from config.config_loader import Config; config = Config()
# Precedence, lowest first: built-in defaults, probe_config.yaml,
# SEARCH_PROBE_* environment variables (a project .env is loaded first).
# Command line flags are applied on top by probe.check.

ENV_PREFIX = "SEARCH_PROBE_"

DEFAULTS = {
    "backend": "solr",
    "host": "localhost",
    "port": 8080,
    "core": "",
    "scheme": "http",
    "timeout": 10,
    "username": None,
    "password": None,
    "query": "*:*",
    "sortkey": "",
    "minhits": 1000000,
    "maxqtime": 200,
    "stale_after_minutes": 30,
    "log_level": "WARNING",
}

_INT_KEYS = ("port", "minhits", "maxqtime", "stale_after_minutes")
_FLOAT_KEYS = ("timeout",)


class ConfigError(Exception):
    pass


class Config:
    _instance = None
    _config_path = None

    def __new__(cls):
        if cls._instance is None:
            instance = super(Config, cls).__new__(cls)
            instance._load_yaml_configs()
            instance._set_values()
            cls._instance = instance
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the cached instance so the next Config() re-reads everything."""
        cls._instance = None
        cls._config_path = None

    @classmethod
    def load(cls, config_path=None) -> "Config":
        """Re-read configuration, optionally from an explicit YAML file."""
        cls.reset()
        cls._config_path = config_path
        return cls()

    def _load_yaml_configs(self):
        self.BASE_DIR = Path(__file__).resolve().parent.parent
        load_dotenv(dotenv_path=self.BASE_DIR / ".env")

        explicit = type(self)._config_path or os.environ.get(ENV_PREFIX + "CONFIG")
        if explicit:
            self.CONFIG_PATH = Path(explicit)
            self.probe = self.read_yaml(self.CONFIG_PATH, required=True)
        else:
            self.CONFIG_PATH = self.BASE_DIR / 'config' / 'probe_config.yaml'
            self.probe = self.read_yaml(self.CONFIG_PATH)

    @staticmethod
    def read_yaml(path, required: bool = False) -> dict:
        """Return the ``probe`` section of a YAML file.

        A missing file gives {} unless ``required`` is set.
        """
        path = Path(path)
        if not path.exists():
            if required:
                raise ConfigError(f"config file not found: {path}")
            return {}
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"cannot read {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: top level must be a mapping")
        section = data.get('probe', {}) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"{path}: 'probe' section must be a mapping")
        return section

    def _set_values(self):
        values = dict(DEFAULTS)
        values.update({k: v for k, v in self.probe.items() if k in DEFAULTS})
        for key in DEFAULTS:
            env_value = os.environ.get(ENV_PREFIX + key.upper())
            if env_value is not None:
                values[key] = env_value
        try:
            for key in _INT_KEYS:
                values[key] = int(values[key])
            for key in _FLOAT_KEYS:
                values[key] = float(values[key])
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid numeric setting: {exc}") from exc

        self.SEARCH_BACKEND = str(values["backend"]).lower()
        self.SEARCH_HOST = values["host"]
        self.SEARCH_PORT = values["port"]
        self.SEARCH_CORE = values["core"]
        self.SCHEME = values["scheme"]
        self.TIMEOUT = values["timeout"]
        self.USERNAME = values["username"]
        self.PASSWORD = values["password"]
        self.QUERY = values["query"]
        self.SORT_KEY = values["sortkey"]
        self.MIN_HITS = values["minhits"]
        self.MAX_QTIME_MS = values["maxqtime"]
        self.STALE_AFTER_MINUTES = values["stale_after_minutes"]
        self.LOG_LEVEL = str(values["log_level"]).upper()
