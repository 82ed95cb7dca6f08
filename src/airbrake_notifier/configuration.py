import json
import logging
import os.path
import socket
from typing import Annotated, Any, Mapping

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from airbrake_notifier.options import DEFAULT_OPTIONS, REQUIRED_OPTIONS

logger = logging.getLogger(__name__)

NOTIFIER_NAME = "Airbrake Notifier Client for Python"
NOTIFIER_VERSION = "1.1.0"
NOTIFIER_URL = "https://github.com/rentjuice/airbrake-php-client"

API_BASE_URL = "http://airbrake.io"
API_VERSION = "2.2"


def parse_bool_from_env(data: Any) -> bool:
    if isinstance(data, bool):
        return data
    if not str(data).lower() in ("yes", "true", "t", "y", "1", "on"):
        return False
    return True


def parse_dict_from_env(data: Any) -> Any:
    if isinstance(data, str):
        return json.loads(data)
    return data


def as_absolute_path(path: str) -> str:
    return os.path.abspath(path)


ParseBool = Annotated[bool, BeforeValidator(parse_bool_from_env)]
ParsePath = Annotated[str, BeforeValidator(as_absolute_path)]
ParseDict = Annotated[dict[str, Any], BeforeValidator(parse_dict_from_env)]


class NotifierConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    AIRBRAKE_API_KEY: str
    AIRBRAKE_DEBUG: ParseBool = False
    AIRBRAKE_PROJECT_ROOT: ParsePath = Field(default_factory=os.getcwd)
    AIRBRAKE_ENVIRONMENT_NAME: str | None = None
    AIRBRAKE_PROJECT_VERSION: str = "1.0.0"
    AIRBRAKE_API_BASE_URL: str = API_BASE_URL

    AIRBRAKE_REQUIRED_TRANSPORT_OPTIONS: ParseDict = Field(
        default_factory=lambda: dict(REQUIRED_OPTIONS)
    )
    AIRBRAKE_DEFAULT_TRANSPORT_OPTIONS: ParseDict = Field(
        default_factory=lambda: dict(DEFAULT_OPTIONS)
    )

    HOSTNAME: str = Field(default_factory=socket.gethostname)

    @property
    def api_key(self) -> str:
        return self.AIRBRAKE_API_KEY

    @property
    def debug(self) -> bool:
        return self.AIRBRAKE_DEBUG

    @property
    def environment_name(self) -> str:
        if self.AIRBRAKE_ENVIRONMENT_NAME is not None:
            return self.AIRBRAKE_ENVIRONMENT_NAME
        return "development" if self.AIRBRAKE_DEBUG else "production"

    @property
    def api_major_version(self) -> int:
        return int(API_VERSION.split(".")[0])

    @property
    def notices_path(self) -> str:
        return f"notifier_api/v{self.api_major_version}/notices"

    def do_validation(self):
        if not self.AIRBRAKE_API_KEY.strip():
            logger.warning("AIRBRAKE_API_KEY is blank, notices will be rejected")


def load_from_environment(environ: Mapping[str, str] | None = None) -> NotifierConfig:
    return NotifierConfig.model_validate(dict(environ if environ is not None else os.environ))
