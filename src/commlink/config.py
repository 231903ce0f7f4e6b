"""
Service settings: read from a JSON settings file.

    {
      "Credentials": {"Username": "svc@example.org", "Password": "...", "Encryption": "none"},
      "Service": {"Version": "1.2.0", "About": "Weather station"},
      "Transport": {"Url": "https://relay.example.org", "ReadyTimeout": 15}
    }

COMMLINK_USERNAME / COMMLINK_PASSWORD override the file's credentials.
"""

import json
import os
from pathlib import Path
from typing import Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from commlink.errors import ConfigError

DEFAULT_VERSION = "0.0.0"
NO_ENCRYPTION = "none"

DecryptHook = Callable[[str, str], str]


class Credentials(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(alias="Username", min_length=1)
    password: str = Field(alias="Password")
    encryption: Optional[str] = Field(default=None, alias="Encryption")


class ServiceSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: str = Field(default=DEFAULT_VERSION, alias="Version")
    about: Optional[str] = Field(default=None, alias="About")


class TransportSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: Optional[str] = Field(default=None, alias="Url")
    ready_timeout: float = Field(default=15.0, alias="ReadyTimeout", gt=0)


class ServiceConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    credentials: Credentials = Field(alias="Credentials")
    service: ServiceSettings = Field(default_factory=ServiceSettings, alias="Service")
    transport: TransportSettings = Field(default_factory=TransportSettings, alias="Transport")

    def password(self, decrypt: Optional[DecryptHook] = None) -> str:
        """The usable password, passed through `decrypt` when encrypted."""
        scheme = (self.credentials.encryption or NO_ENCRYPTION).strip().lower()
        if scheme == NO_ENCRYPTION:
            return self.credentials.password
        if decrypt is None:
            raise ConfigError(f"Password uses encryption {scheme!r} but no decrypt hook was supplied")
        return decrypt(self.credentials.password, scheme)

    def about(self, service_name: str) -> str:
        return self.service.about or f"{service_name} service running as {self.credentials.username}"


def load_config(path: Union[str, Path]) -> ServiceConfig:
    path = Path(path)
    try:
        data = json.loads(path.read_text())
    except FileNotFoundError:
        raise ConfigError(f"Settings file not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Settings file {path} is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a JSON object")
    return config_from_dict(data)


def config_from_dict(data: dict) -> ServiceConfig:
    credentials = data.get("Credentials") or {}
    if not isinstance(credentials, dict):
        raise ConfigError("Settings Credentials must be a JSON object")
    credentials = dict(credentials)
    if os.environ.get("COMMLINK_USERNAME"):
        credentials["Username"] = os.environ["COMMLINK_USERNAME"]
    if os.environ.get("COMMLINK_PASSWORD"):
        credentials["Password"] = os.environ["COMMLINK_PASSWORD"]
    try:
        return ServiceConfig.model_validate({**data, "Credentials": credentials})
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid settings: {e}")
