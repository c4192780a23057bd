"""
MSK stack - provisioned Kafka cluster, storage autoscaling, and monitoring.

Resources:
- MSK cluster spread across the broker subnets of the VPC stack
- Broker log group (CloudWatch Logs)
- Application Auto Scaling target and target-tracking policy for broker storage
- MskDashboard: SNS notification topic, alarms, CloudWatch dashboard
"""

from aws_cdk import CfnOutput, RemovalPolicy, Stack
from aws_cdk import aws_applicationautoscaling as appscaling
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_logs as logs
from aws_cdk import aws_msk as msk
from constructs import Construct

from streaming_infra.config import Config
from streaming_infra.logging import get_logger

from .msk_dashboard import MskDashboard

logger = get_logger(__name__)

STORAGE_SCALABLE_DIMENSION = "kafka:broker-storage:VolumeSize"
STORAGE_UTILIZATION_TARGET = 75  # percent


class MskStack(Stack):
    """Managed Kafka cluster deployed into an existing or newly created VPC."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        config: Config,
        vpc: ec2.IVpc,
        security_group: ec2.ISecurityGroup,
        broker_subnets: ec2.SubnetSelection,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Prod cluster and broker logs are retained when the stack is deleted
        removal_policy = RemovalPolicy.RETAIN if config.is_production else RemovalPolicy.DESTROY

        subnet_ids = vpc.select_subnets(
            subnet_type=broker_subnets.subnet_type,
            subnets=broker_subnets.subnets,
        ).subnet_ids
        # MSK requires the broker count to be a multiple of the client subnet count
        self.broker_count = config.brokers_per_az * len(subnet_ids)

        self.log_group = logs.LogGroup(
            self,
            "BrokerLogGroup",
            log_group_name=f"/aws/msk/{config.resource_prefix}",
            retention=logs.RetentionDays.ONE_MONTH,
            removal_policy=removal_policy,
        )

        self.cluster = msk.CfnCluster(
            self,
            "MskCluster",
            cluster_name=config.resource_prefix,
            kafka_version=config.kafka_version,
            number_of_broker_nodes=self.broker_count,
            broker_node_group_info=msk.CfnCluster.BrokerNodeGroupInfoProperty(
                instance_type=config.broker_instance_type,
                client_subnets=subnet_ids,
                security_groups=[security_group.security_group_id],
                storage_info=msk.CfnCluster.StorageInfoProperty(
                    ebs_storage_info=msk.CfnCluster.EBSStorageInfoProperty(
                        volume_size=config.broker_volume_size,
                    )
                ),
            ),
            encryption_info=msk.CfnCluster.EncryptionInfoProperty(
                encryption_in_transit=msk.CfnCluster.EncryptionInTransitProperty(
                    client_broker="TLS",
                    in_cluster=True,
                )
            ),
            enhanced_monitoring="PER_TOPIC_PER_PARTITION",
            open_monitoring=msk.CfnCluster.OpenMonitoringProperty(
                prometheus=msk.CfnCluster.PrometheusProperty(
                    jmx_exporter=msk.CfnCluster.JmxExporterProperty(enabled_in_broker=True),
                    node_exporter=msk.CfnCluster.NodeExporterProperty(enabled_in_broker=True),
                )
            ),
            logging_info=msk.CfnCluster.LoggingInfoProperty(
                broker_logs=msk.CfnCluster.BrokerLogsProperty(
                    cloud_watch_logs=msk.CfnCluster.CloudWatchLogsProperty(
                        enabled=True,
                        log_group=self.log_group.log_group_name,
                    )
                )
            ),
        )
        self.cluster.apply_removal_policy(removal_policy)
        self.cluster.node.add_dependency(self.log_group)

        self._add_storage_autoscaling(config)

        self.monitoring = MskDashboard(
            self,
            "MskDashboard",
            config=config,
            cluster_name=config.resource_prefix,
            brokers=self.broker_count,
        )

        # =================================================================
        # Outputs
        # =================================================================

        CfnOutput(
            self,
            "ClusterArn",
            value=self.cluster.attr_arn,
            description="ARN of the MSK cluster",
            export_name=f"{config.namespace}MskClusterArn",
        )

        CfnOutput(
            self,
            "ClusterName",
            value=config.resource_prefix,
            description="Name of the MSK cluster",
        )

        logger.info(
            "msk_cluster_declared",
            stack=construct_id,
            cluster_name=config.resource_prefix,
            kafka_version=config.kafka_version,
            brokers=self.broker_count,
            instance_type=config.broker_instance_type,
        )

    def _add_storage_autoscaling(self, config: Config) -> None:
        """Grow broker volumes up to max_volume_size; never shrink them."""
        self.storage_scaling_target = appscaling.ScalableTarget(
            self,
            "MskStorageASGTarget",
            min_capacity=1,
            max_capacity=config.max_volume_size,
            resource_id=self.cluster.attr_arn,
            scalable_dimension=STORAGE_SCALABLE_DIMENSION,
            service_namespace=appscaling.ServiceNamespace.KAFKA,
        )

        appscaling.TargetTrackingScalingPolicy(
            self,
            "MskStorageASGPolicy",
            policy_name=f"{config.namespace}StorageAutoScaling",
            scaling_target=self.storage_scaling_target,
            predefined_metric=appscaling.PredefinedMetric.KAFKA_BROKER_STORAGE_UTILIZATION,
            target_value=STORAGE_UTILIZATION_TARGET,
            disable_scale_in=True,
        )
