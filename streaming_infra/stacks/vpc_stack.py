"""
VPC stack - network and broker security group.

Creates a new VPC, or imports an existing one when VPC_ID and SUBNET_INFO are
configured. In import mode, brokers are pinned to the configured subnets.
"""

from aws_cdk import CfnOutput, Stack
from aws_cdk import aws_ec2 as ec2
from constructs import Construct

from streaming_infra.config import Config
from streaming_infra.logging import get_logger

logger = get_logger(__name__)


class VpcStack(Stack):
    """Provides the network the MSK cluster runs in."""

    def __init__(self, scope: Construct, construct_id: str, *, config: Config, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        if config.imports_vpc:
            self.vpc = self._import_vpc(config)
            broker_subnets = [
                ec2.Subnet.from_subnet_attributes(
                    self,
                    f"BrokerSubnet{index}",
                    subnet_id=subnet_id,
                    availability_zone=zone,
                )
                for index, (subnet_id, zone) in enumerate(config.subnet_topology.items(), start=1)
            ]
            self.broker_subnets = ec2.SubnetSelection(subnets=broker_subnets)
        else:
            self.vpc = self._create_vpc()
            self.broker_subnets = ec2.SubnetSelection(
                subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS
            )

        # Brokers and clients share this group; members may talk to each other freely
        self.security_group = ec2.SecurityGroup(
            self,
            "BrokerSecurityGroup",
            vpc=self.vpc,
            description=f"{config.namespace} Kafka brokers and clients",
            allow_all_outbound=True,
        )
        self.security_group.connections.allow_internally(
            ec2.Port.all_traffic(), "Traffic between group members"
        )

        CfnOutput(
            self,
            "VpcId",
            value=self.vpc.vpc_id,
            description="VPC hosting the Kafka cluster",
        )

        logger.info(
            "vpc_declared",
            stack=construct_id,
            mode="import" if config.imports_vpc else "create",
            vpc_id=config.vpc_id,
        )

    def _create_vpc(self) -> ec2.Vpc:
        return ec2.Vpc(
            self,
            "Vpc",
            max_azs=2,
            nat_gateways=1,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="Public",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=24,
                ),
                ec2.SubnetConfiguration(
                    name="Private",
                    subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                    cidr_mask=24,
                ),
            ],
            flow_logs={
                "FlowLogs": ec2.FlowLogOptions(traffic_type=ec2.FlowLogTrafficType.ALL),
            },
        )

    def _import_vpc(self, config: Config) -> ec2.IVpc:
        return ec2.Vpc.from_vpc_attributes(
            self,
            "Vpc",
            vpc_id=config.vpc_id,
            availability_zones=config.availability_zones,
        )

    @property
    def broker_subnet_ids(self) -> list[str]:
        """Subnet ids the brokers are placed in."""
        return self.vpc.select_subnets(
            subnet_type=self.broker_subnets.subnet_type,
            subnets=self.broker_subnets.subnets,
        ).subnet_ids
