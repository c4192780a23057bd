"""
MSK monitoring - CloudWatch metrics, alarms, and dashboard for a Kafka cluster.

Provides visibility into:
- Cluster health (active controller, offline partitions)
- Broker health (under-replicated partitions, CPU, data log disk usage)
- Consumer lag per consumer group

Every alarm notifies the Kafka notification SNS topic.
"""

from dataclasses import dataclass, field

from aws_cdk import Duration
from aws_cdk import aws_cloudwatch as cloudwatch
from aws_cdk import aws_cloudwatch_actions as cw_actions
from aws_cdk import aws_sns as sns
from aws_cdk import aws_sns_subscriptions as sns_subscriptions
from cdk_nag import NagSuppressions
from constructs import Construct

from streaming_infra.config import Config

KAFKA_METRIC_NAMESPACE = "AWS/Kafka"
EVALUATION_PERIODS = 3

CPU_USER_THRESHOLD = 60  # percent
DISK_USED_THRESHOLD = 85  # percent
MAX_OFFSET_LAG_THRESHOLD = 100  # messages


@dataclass
class MskMetrics:
    """Cluster-wide and per-broker metrics."""

    active_controller_count: cloudwatch.Metric
    offline_partitions_count: cloudwatch.Metric
    under_replicated_partitions: list[cloudwatch.Metric] = field(default_factory=list)
    cpu_user: list[cloudwatch.Metric] = field(default_factory=list)
    disk_used: list[cloudwatch.Metric] = field(default_factory=list)


@dataclass
class AppMetrics:
    """Consumer-side metrics keyed by consumer group."""

    max_offset_lag: dict[str, cloudwatch.Metric] = field(default_factory=dict)


class MskDashboard(Construct):
    """
    Alarms and a dashboard for one MSK cluster.

    Broker-level metrics are declared for broker ids 1..brokers, which is how
    MSK numbers the brokers of a provisioned cluster.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        config: Config,
        cluster_name: str,
        brokers: int,
    ) -> None:
        super().__init__(scope, construct_id)

        self._config = config
        self._cluster_name = cluster_name

        self.topic = self._create_topic()
        alarm_action = cw_actions.SnsAction(self.topic)

        self.msk_metrics = self._create_msk_metrics(brokers)
        self.app_metrics = self._create_app_metrics(config.consumer_groups)

        self.alarms: list[cloudwatch.Alarm] = [
            *self._create_broker_alarms(self.msk_metrics),
            *self._create_application_alarms(self.app_metrics),
        ]
        for alarm in self.alarms:
            alarm.add_alarm_action(alarm_action)

        self.dashboard = self._create_dashboard(self.msk_metrics, self.app_metrics)

    # =================================================================
    # SNS Topic
    # =================================================================

    def _create_topic(self) -> sns.Topic:
        topic_name = f"{self._config.resource_prefix}-kafka-notification"
        topic = sns.Topic(
            self,
            "NotificationTopic",
            topic_name=topic_name,
            display_name=topic_name,
            enforce_ssl=True,
        )
        if self._config.alarm_email:
            topic.add_subscription(sns_subscriptions.EmailSubscription(self._config.alarm_email))
        NagSuppressions.add_resource_suppressions(
            topic,
            [
                {
                    "id": "AwsSolutions-SNS2",
                    "reason": "Alarm notifications carry no sensitive payload",
                }
            ],
        )
        return topic

    # =================================================================
    # Metrics
    # =================================================================

    def _metric(
        self, metric_name: str, statistic: str, **dimensions: str
    ) -> cloudwatch.Metric:
        return cloudwatch.Metric(
            namespace=KAFKA_METRIC_NAMESPACE,
            metric_name=metric_name,
            dimensions_map={"Cluster Name": self._cluster_name, **dimensions},
            statistic=statistic,
            period=Duration.minutes(1),
        )

    def _broker_metric(self, metric_name: str, statistic: str, broker_id: int) -> cloudwatch.Metric:
        return self._metric(metric_name, statistic, **{"Broker ID": str(broker_id)})

    def _create_msk_metrics(self, brokers: int) -> MskMetrics:
        broker_ids = range(1, brokers + 1)
        return MskMetrics(
            active_controller_count=self._metric("ActiveControllerCount", "Sum"),
            offline_partitions_count=self._metric("OfflinePartitionsCount", "Sum"),
            under_replicated_partitions=[
                self._broker_metric("UnderReplicatedPartitions", "Sum", broker_id)
                for broker_id in broker_ids
            ],
            cpu_user=[
                self._broker_metric("CpuUser", "Average", broker_id) for broker_id in broker_ids
            ],
            disk_used=[
                self._broker_metric("KafkaDataLogsDiskUsed", "Average", broker_id)
                for broker_id in broker_ids
            ],
        )

    def _create_app_metrics(self, consumer_groups: tuple[str, ...]) -> AppMetrics:
        # Each consumer group reads the topic named after its service
        return AppMetrics(
            max_offset_lag={
                group: self._metric(
                    "MaxOffsetLag",
                    "Maximum",
                    **{"Consumer Group": group, "Topic": f"{group}-service"},
                )
                for group in consumer_groups
            }
        )

    # =================================================================
    # Alarms
    # =================================================================

    def _alarm(
        self,
        construct_id: str,
        alarm_name: str,
        description: str,
        metric: cloudwatch.Metric,
        threshold: float,
        comparison_operator: cloudwatch.ComparisonOperator,
    ) -> cloudwatch.Alarm:
        return cloudwatch.Alarm(
            self,
            construct_id,
            alarm_name=f"{self._config.namespace}{alarm_name}",
            alarm_description=description,
            metric=metric,
            threshold=threshold,
            evaluation_periods=EVALUATION_PERIODS,
            comparison_operator=comparison_operator,
        )

    def _create_broker_alarms(self, metrics: MskMetrics) -> list[cloudwatch.Alarm]:
        alarms = [
            self._alarm(
                "ActiveControllerAlarm",
                "KafkaActiveControllerCount",
                "Cluster has no active controller",
                metrics.active_controller_count,
                1,
                cloudwatch.ComparisonOperator.LESS_THAN_THRESHOLD,
            ),
            self._alarm(
                "OfflinePartitionsCountAlarm",
                "KafkaOfflinePartitionsCount",
                "Partitions are offline",
                metrics.offline_partitions_count,
                0,
                cloudwatch.ComparisonOperator.GREATER_THAN_THRESHOLD,
            ),
        ]

        for broker_id, metric in enumerate(metrics.under_replicated_partitions, start=1):
            alarms.append(
                self._alarm(
                    f"UnderReplicatedPartitionsAlarm{broker_id}",
                    f"KafkaUnderReplicatedPartitions{broker_id}",
                    f"Broker {broker_id} has under-replicated partitions",
                    metric,
                    0,
                    cloudwatch.ComparisonOperator.GREATER_THAN_THRESHOLD,
                )
            )

        for broker_id, metric in enumerate(metrics.cpu_user, start=1):
            alarms.append(
                self._alarm(
                    f"CpuUser{broker_id}",
                    f"KafkaCpuUser{broker_id}",
                    f"Broker {broker_id} user CPU exceeds {CPU_USER_THRESHOLD}%",
                    metric,
                    CPU_USER_THRESHOLD,
                    cloudwatch.ComparisonOperator.GREATER_THAN_THRESHOLD,
                )
            )

        for broker_id, metric in enumerate(metrics.disk_used, start=1):
            alarms.append(
                self._alarm(
                    f"KafkaDataLogsDiskUsed{broker_id}",
                    f"KafkaDataLogsDiskUsed{broker_id}",
                    f"Broker {broker_id} data log disk usage at or above {DISK_USED_THRESHOLD}%",
                    metric,
                    DISK_USED_THRESHOLD,
                    cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
                )
            )

        return alarms

    def _create_application_alarms(self, metrics: AppMetrics) -> list[cloudwatch.Alarm]:
        return [
            self._alarm(
                f"KafkaMaxOffsetLag-{group}",
                f"KafkaMaxOffsetLag-{group}",
                f"Consumer group {group} lags {MAX_OFFSET_LAG_THRESHOLD}+ messages behind",
                metric,
                MAX_OFFSET_LAG_THRESHOLD,
                cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
            )
            for group, metric in metrics.max_offset_lag.items()
        ]

    # =================================================================
    # Dashboard
    # =================================================================

    def _create_dashboard(self, msk_metrics: MskMetrics, app_metrics: AppMetrics) -> cloudwatch.Dashboard:
        dashboard = cloudwatch.Dashboard(
            self,
            "KafkaDashboard",
            dashboard_name=f"{self._config.namespace}KafkaDashboard",
        )

        # Row 1: Cluster health
        dashboard.add_widgets(
            cloudwatch.SingleValueWidget(
                title="ActiveControllerCount",
                metrics=[msk_metrics.active_controller_count],
                width=4,
            ),
            cloudwatch.GraphWidget(
                title="OfflinePartitionsCount",
                left=[msk_metrics.offline_partitions_count],
                width=4,
            ),
            cloudwatch.GraphWidget(
                title="UnderReplicatedPartitions",
                left=msk_metrics.under_replicated_partitions,
                width=16,
            ),
        )

        # Row 2: Broker resources
        dashboard.add_widgets(
            cloudwatch.GraphWidget(
                title="CPU User",
                left=msk_metrics.cpu_user,
                left_y_axis=cloudwatch.YAxisProps(label="Percent", min=0, max=100),
                width=12,
            ),
            cloudwatch.GraphWidget(
                title="Disk Used",
                left=msk_metrics.disk_used,
                left_y_axis=cloudwatch.YAxisProps(label="Percent", min=0, max=100),
                width=12,
            ),
        )

        # Row 3: Consumer lag (only when consumer groups are configured)
        if app_metrics.max_offset_lag:
            dashboard.add_widgets(
                cloudwatch.GraphWidget(
                    title="MaxOffsetLag",
                    left=list(app_metrics.max_offset_lag.values()),
                    width=12,
                ),
            )

        # Row 4: Alarm status
        dashboard.add_widgets(
            cloudwatch.AlarmStatusWidget(
                title="Alarm Status",
                alarms=self.alarms,
                width=24,
                height=4,
            ),
        )

        return dashboard
