"""
Deployment configuration resolved from the environment.

Variables are read from the process environment, merged with a `.env` file
in the working directory, validated as a whole, and turned into one immutable
`Config` that every stack reads. Invalid input raises `ConfigurationError`
before any resource is declared.

Usage:
    from streaming_infra.config import get_config

    config = get_config()
    vpc_stack = VpcStack(app, f"{config.namespace}VpcStack", config=config)
"""

import functools
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from streaming_infra.config.exceptions import ConfigurationError
from streaming_infra.logging import get_logger

logger = get_logger(__name__)

SUBNET_ID_PREFIX = "subnet-"

DEFAULT_KAFKA_VERSION = "2.8.1"
DEFAULT_BROKER_INSTANCE_TYPE = "kafka.m5.large"
DEFAULT_BROKER_VOLUME_SIZE = 1000  # GiB
DEFAULT_MAX_VOLUME_SIZE = 4096  # GiB
MAX_EBS_VOLUME_SIZE = 16384  # GiB, MSK per-broker limit

# MSK cluster names allow 64 characters; the stage suffix takes up to 4
MAX_NAME_LENGTH = 60

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Stage(str, Enum):
    """Deployment environment label."""

    DEV = "Dev"
    PROD = "Prod"


class EnvironmentSettings(BaseSettings):
    """Raw deployment variables from the process environment and `.env`."""

    AWS_ACCOUNT_ID: str | None = None
    AWS_REGION: str | None = None
    STAGE: str | None = None
    NS: str | None = None

    VPC_ID: str | None = None
    SUBNET_INFO: str | None = None

    KAFKA_VERSION: str | None = None
    BROKER_INSTANCE_TYPE: str | None = None
    BROKERS_PER_AZ: str | None = None
    BROKER_VOLUME_SIZE: str | None = None
    MAX_VOLUME_SIZE: str | None = None
    CONSUMER_GROUPS: str | None = None
    ALARM_EMAIL: str | None = None

    LOG_LEVEL: str | None = None
    LOG_JSON: str | None = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class EnvironmentSchema(BaseModel):
    """Validation rules for the deployment variables."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    # Required
    AWS_ACCOUNT_ID: str = Field(pattern=r"^\d+$")
    AWS_REGION: str = Field(min_length=1)
    STAGE: Stage
    NS: str = Field(
        min_length=1, max_length=MAX_NAME_LENGTH, pattern=r"^[A-Za-z0-9][A-Za-z0-9-]*$"
    )

    # Existing network (co-required)
    VPC_ID: str | None = None
    SUBNET_INFO: str | None = None

    # Cluster sizing
    KAFKA_VERSION: str = Field(default=DEFAULT_KAFKA_VERSION, min_length=1)
    BROKER_INSTANCE_TYPE: str = Field(default=DEFAULT_BROKER_INSTANCE_TYPE, pattern=r"^kafka\.")
    BROKERS_PER_AZ: int = Field(default=1, ge=1)
    BROKER_VOLUME_SIZE: int = Field(default=DEFAULT_BROKER_VOLUME_SIZE, ge=1, le=MAX_EBS_VOLUME_SIZE)
    MAX_VOLUME_SIZE: int = Field(default=DEFAULT_MAX_VOLUME_SIZE, ge=1, le=MAX_EBS_VOLUME_SIZE)
    CONSUMER_GROUPS: str = ""
    ALARM_EMAIL: EmailStr | None = None

    # Logging
    LOG_LEVEL: LogLevel = "INFO"
    LOG_JSON: bool = False

    @field_validator(
        "VPC_ID",
        "SUBNET_INFO",
        "KAFKA_VERSION",
        "BROKER_INSTANCE_TYPE",
        "BROKERS_PER_AZ",
        "BROKER_VOLUME_SIZE",
        "MAX_VOLUME_SIZE",
        "ALARM_EMAIL",
        "LOG_LEVEL",
        "LOG_JSON",
        mode="before",
    )
    @classmethod
    def _blank_as_unset(cls, value: Any, info: ValidationInfo) -> Any:
        """Treat `VAR=` lines in `.env` files as if the variable were absent."""
        if isinstance(value, str) and not value.strip():
            default = cls.model_fields[info.field_name].default
            return default
        return value

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _upper_log_level(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value


@dataclass(frozen=True)
class Config:
    """Immutable, process-wide deployment configuration."""

    namespace: str
    stage: Stage
    aws_account: str
    aws_region: str
    vpc_id: str | None = None
    subnet_topology: Mapping[str, str] = field(default_factory=dict)

    kafka_version: str = DEFAULT_KAFKA_VERSION
    broker_instance_type: str = DEFAULT_BROKER_INSTANCE_TYPE
    brokers_per_az: int = 1
    broker_volume_size: int = DEFAULT_BROKER_VOLUME_SIZE
    max_volume_size: int = DEFAULT_MAX_VOLUME_SIZE
    consumer_groups: tuple[str, ...] = ()
    alarm_email: str | None = None

    log_level: LogLevel = "INFO"
    log_json: bool = False

    def __post_init__(self):
        if self.vpc_id and not self.subnet_topology:
            raise ConfigurationError(
                "SUBNET_INFO is required when VPC_ID is set", field="SUBNET_INFO"
            )
        if self.subnet_topology and not self.vpc_id:
            raise ConfigurationError("VPC_ID is required when SUBNET_INFO is set", field="VPC_ID")
        object.__setattr__(self, "subnet_topology", MappingProxyType(dict(self.subnet_topology)))

    @property
    def is_production(self) -> bool:
        return self.stage == Stage.PROD

    @property
    def imports_vpc(self) -> bool:
        """True when an existing VPC is imported instead of creating one."""
        return self.vpc_id is not None

    @property
    def resource_prefix(self) -> str:
        """Lower-cased namespace for names AWS restricts to lower case."""
        return self.namespace.lower()

    @property
    def availability_zones(self) -> list[str]:
        """Distinct availability zones of the subnet topology, in input order."""
        return list(dict.fromkeys(self.subnet_topology.values()))


def parse_subnet_topology(raw: str | None) -> Mapping[str, str]:
    """
    Parse a `subnet-id,availability-zone,...` string into a read-only mapping.

    A blank or missing value yields an empty mapping, which leaves subnet
    placement to the VPC's private subnets.

    Raises:
        ConfigurationError: On an odd token count, a subnet id without the
            `subnet-` prefix, an empty availability zone, or a repeated subnet id.
    """
    if raw is None or not raw.strip():
        return MappingProxyType({})

    tokens = [token.strip() for token in raw.split(",")]
    if len(tokens) % 2:
        raise ConfigurationError(
            f"SUBNET_INFO must hold subnet-id,availability-zone pairs; got {len(tokens)} tokens",
            field="SUBNET_INFO",
        )

    topology: dict[str, str] = {}
    for position in range(0, len(tokens), 2):
        subnet_id, zone = tokens[position], tokens[position + 1]
        if not subnet_id.startswith(SUBNET_ID_PREFIX):
            raise ConfigurationError(
                f"SUBNET_INFO token {position} must be a subnet id starting with "
                f"'{SUBNET_ID_PREFIX}', got '{subnet_id}'",
                field="SUBNET_INFO",
            )
        if not zone:
            raise ConfigurationError(
                f"SUBNET_INFO has no availability zone for {subnet_id}", field="SUBNET_INFO"
            )
        if subnet_id in topology:
            raise ConfigurationError(
                f"SUBNET_INFO lists {subnet_id} more than once", field="SUBNET_INFO"
            )
        topology[subnet_id] = zone

    return MappingProxyType(topology)


def _parse_consumer_groups(raw: str) -> tuple[str, ...]:
    groups = (group.strip() for group in raw.split(","))
    return tuple(dict.fromkeys(group for group in groups if group))


def _format_validation_error(exc: ValidationError) -> tuple[str, list[str]]:
    fields: list[str] = []
    details: list[str] = []
    for error in exc.errors():
        name = ".".join(str(part) for part in error["loc"]) or "environment"
        fields.append(name)
        details.append(f"{name}: {error['msg']}")
    return "; ".join(details), fields


def resolve_config(environ: Mapping[str, str] | None = None) -> Config:
    """
    Validate deployment variables and build the immutable configuration.

    Args:
        environ: Variable name to raw string value. When None, the process
            environment and `.env` are read.

    Returns:
        The resolved Config.

    Raises:
        ConfigurationError: If any variable is missing or malformed. All
            schema problems are reported in a single error.
    """
    if environ is None:
        environ = EnvironmentSettings().model_dump(exclude_none=True)

    try:
        env = EnvironmentSchema.model_validate(dict(environ))
    except ValidationError as exc:
        details, fields = _format_validation_error(exc)
        raise ConfigurationError(f"Config validation error: {details}", field=fields) from exc

    if env.VPC_ID and not env.SUBNET_INFO:
        raise ConfigurationError(
            "Config validation error: SUBNET_INFO is required when VPC_ID is set",
            field="SUBNET_INFO",
        )
    if env.SUBNET_INFO and not env.VPC_ID:
        raise ConfigurationError(
            "Config validation error: VPC_ID is required when SUBNET_INFO is set",
            field="VPC_ID",
        )
    if env.MAX_VOLUME_SIZE < env.BROKER_VOLUME_SIZE:
        raise ConfigurationError(
            "Config validation error: MAX_VOLUME_SIZE must not be smaller than BROKER_VOLUME_SIZE",
            field="MAX_VOLUME_SIZE",
        )

    config = Config(
        namespace=f"{env.NS}{env.STAGE.value}",
        stage=env.STAGE,
        aws_account=env.AWS_ACCOUNT_ID,
        aws_region=env.AWS_REGION,
        vpc_id=env.VPC_ID,
        subnet_topology=parse_subnet_topology(env.SUBNET_INFO),
        kafka_version=env.KAFKA_VERSION,
        broker_instance_type=env.BROKER_INSTANCE_TYPE,
        brokers_per_az=env.BROKERS_PER_AZ,
        broker_volume_size=env.BROKER_VOLUME_SIZE,
        max_volume_size=env.MAX_VOLUME_SIZE,
        consumer_groups=_parse_consumer_groups(env.CONSUMER_GROUPS),
        alarm_email=env.ALARM_EMAIL,
        log_level=env.LOG_LEVEL,
        log_json=env.LOG_JSON,
    )

    logger.info(
        "config_resolved",
        namespace=config.namespace,
        stage=config.stage.value,
        region=config.aws_region,
        imports_vpc=config.imports_vpc,
        subnet_count=len(config.subnet_topology),
    )
    return config


@functools.cache
def get_config() -> Config:
    """Resolve the configuration from the process environment once per process."""
    return resolve_config()
