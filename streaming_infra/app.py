"""
CDK app assembly: VPC and MSK stacks for one deployment namespace.
"""

import aws_cdk as cdk

from streaming_infra.config import Config, ConfigurationError, get_config
from streaming_infra.logging import configure_logging, get_logger
from streaming_infra.stacks import MskStack, VpcStack, add_validation_aspects

logger = get_logger(__name__)


def build_stacks(app: cdk.App, config: Config) -> tuple[VpcStack, MskStack]:
    """Declare the VPC and MSK stacks for `config` inside `app`."""
    env = cdk.Environment(account=config.aws_account, region=config.aws_region)

    vpc_stack = VpcStack(app, f"{config.namespace}VpcStack", config=config, env=env)
    msk_stack = MskStack(
        app,
        f"{config.namespace}MskStack",
        config=config,
        vpc=vpc_stack.vpc,
        security_group=vpc_stack.security_group,
        broker_subnets=vpc_stack.broker_subnets,
        env=env,
    )
    msk_stack.add_dependency(vpc_stack)

    tags = cdk.Tags.of(app)
    tags.add("namespace", config.namespace)
    tags.add("stage", config.stage.value)

    return vpc_stack, msk_stack


def _context_flag(app: cdk.App, key: str, default: bool) -> bool:
    value = app.node.try_get_context(key)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in {"false", "0", "no", "off"}
    return bool(value)


def main(app: cdk.App | None = None) -> None:
    """
    Entry point run by the CDK toolkit (see cdk.json).

    Args:
        app: App to synthesize into. The toolkit-driven default reads its
            output directory and context from the environment.
    """
    configure_logging()

    try:
        config = get_config()
    except ConfigurationError as exc:
        logger.error("config_invalid", error=str(exc), fields=exc.fields)
        raise

    configure_logging(config)

    if app is None:
        app = cdk.App()
    build_stacks(app, config)
    add_validation_aspects(
        app,
        stage=config.stage,
        enable_nag=_context_flag(app, "enable_nag", default=True),
    )

    app.synth()
    logger.info("app_synthesized", outdir=app.outdir)
