"""
CDK validation aspects for pre-deployment checks.

These aspects run during `cdk synth` and add warnings/info annotations,
catching issues before deployment. The AWS Solutions rule pack from cdk-nag
is added on top unless disabled.

Usage:
    from streaming_infra.stacks.validation import add_validation_aspects
    add_validation_aspects(app, stage=config.stage)
"""

import aws_cdk as cdk
import jsii
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_msk as msk
from cdk_nag import AwsSolutionsChecks
from constructs import IConstruct

from streaming_infra.config import Stage

MIN_PRODUCTION_BROKERS = 3
OPEN_CIDRS = frozenset({"0.0.0.0/0", "::/0"})


@jsii.implements(cdk.IAspect)
class ProductionReadinessAspect:
    """
    Validates production-readiness requirements for Kafka clusters.

    Checks (Prod stage only):
    - MSK clusters run at least 3 brokers so topics can keep a replication
      factor of 3
    - MSK clusters encrypt traffic in transit
    """

    def __init__(self, stage: Stage):
        self._stage = stage

    def visit(self, node: IConstruct) -> None:
        if self._stage != Stage.PROD or not isinstance(node, msk.CfnCluster):
            return

        brokers = node.number_of_broker_nodes
        if isinstance(brokers, int) and brokers < MIN_PRODUCTION_BROKERS:
            cdk.Annotations.of(node).add_warning(
                f"Production MSK cluster runs {brokers} broker(s); "
                f"use at least {MIN_PRODUCTION_BROKERS} for replication factor 3"
            )

        if node.encryption_info is None:
            cdk.Annotations.of(node).add_warning(
                "Production MSK cluster does not configure in-transit encryption"
            )


@jsii.implements(cdk.IAspect)
class SecurityAspect:
    """
    Validates network exposure of deployed resources.

    Checks:
    - Security group ingress rules are not open to the internet, whether they
      are standalone ingress resources or inline rules of a security group
    """

    def visit(self, node: IConstruct) -> None:
        if isinstance(node, ec2.CfnSecurityGroupIngress):
            if node.cidr_ip in OPEN_CIDRS or node.cidr_ipv6 in OPEN_CIDRS:
                self._flag(node)
        elif isinstance(node, ec2.CfnSecurityGroup):
            # Rules added through SecurityGroup.add_ingress_rule are rendered lazily
            rules = cdk.Stack.of(node).resolve(node.security_group_ingress) or []
            if any(_is_open_rule(rule) for rule in rules):
                self._flag(node)

    def _flag(self, node: IConstruct) -> None:
        cdk.Annotations.of(node).add_info(
            "Security group ingress is open to the internet; restrict it to the VPC"
        )


def _is_open_rule(rule: dict) -> bool:
    cidrs = (rule.get("cidrIp"), rule.get("cidrIpv6"))
    return any(isinstance(cidr, str) and cidr in OPEN_CIDRS for cidr in cidrs)


def add_validation_aspects(
    scope: cdk.App,
    stage: Stage,
    enable_nag: bool = True,
    enable_security_checks: bool = True,
) -> None:
    """
    Add validation aspects to all stacks in the CDK app.

    Args:
        scope: The CDK App to add aspects to
        stage: Deployment stage; production checks only apply to Prod
        enable_nag: Whether to run the cdk-nag AWS Solutions rule pack
        enable_security_checks: Whether to run security-related validations
    """
    cdk.Aspects.of(scope).add(ProductionReadinessAspect(stage=stage))

    if enable_security_checks:
        cdk.Aspects.of(scope).add(SecurityAspect())

    if enable_nag:
        cdk.Aspects.of(scope).add(AwsSolutionsChecks(verbose=True))
