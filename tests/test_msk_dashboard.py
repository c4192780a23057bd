"""
Tests for MSK monitoring: notification topic, alarms, and dashboard.
"""

import json

import aws_cdk as cdk
import pytest
from aws_cdk.assertions import Match, Template

from streaming_infra.stacks import MskDashboard


@pytest.fixture
def build_dashboard(make_config):
    def _build(brokers: int = 2, **overrides) -> tuple[MskDashboard, Template]:
        stack = cdk.Stack(cdk.App(), "MonitoringTest")
        dashboard = MskDashboard(
            stack,
            "MskDashboard",
            config=make_config(**overrides),
            cluster_name="appdev",
            brokers=brokers,
        )
        return dashboard, Template.from_stack(stack)

    return _build


class TestNotificationTopic:
    """Tests for the SNS notification topic."""

    def test_topic_named_after_namespace(self, build_dashboard):
        _, template = build_dashboard()

        template.has_resource_properties(
            "AWS::SNS::Topic",
            {
                "TopicName": "appdev-kafka-notification",
                "DisplayName": "appdev-kafka-notification",
            },
        )

    def test_topic_requires_ssl(self, build_dashboard):
        _, template = build_dashboard()

        template.resource_count_is("AWS::SNS::TopicPolicy", 1)

    def test_no_subscription_by_default(self, build_dashboard):
        _, template = build_dashboard()

        template.resource_count_is("AWS::SNS::Subscription", 0)

    def test_email_subscription(self, build_dashboard):
        _, template = build_dashboard(alarm_email="ops@example.com")

        template.has_resource_properties(
            "AWS::SNS::Subscription",
            {"Protocol": "email", "Endpoint": "ops@example.com"},
        )


class TestMetrics:
    """Tests for metric declarations."""

    def test_per_broker_metrics_use_one_based_ids(self, build_dashboard):
        dashboard, _ = build_dashboard(brokers=3)

        metrics = dashboard.msk_metrics
        assert len(metrics.under_replicated_partitions) == 3
        assert len(metrics.cpu_user) == 3
        assert len(metrics.disk_used) == 3
        assert [metric.dimensions["Broker ID"] for metric in metrics.cpu_user] == ["1", "2", "3"]

    def test_cluster_metrics(self, build_dashboard):
        dashboard, _ = build_dashboard()

        controller = dashboard.msk_metrics.active_controller_count
        assert controller.namespace == "AWS/Kafka"
        assert controller.metric_name == "ActiveControllerCount"
        assert controller.dimensions == {"Cluster Name": "appdev"}
        assert controller.period.to_minutes() == 1

    def test_consumer_group_metrics(self, build_dashboard):
        dashboard, _ = build_dashboard(consumer_groups=("trip", "saga"))

        lag = dashboard.app_metrics.max_offset_lag
        assert list(lag) == ["trip", "saga"]
        assert lag["trip"].dimensions == {
            "Cluster Name": "appdev",
            "Consumer Group": "trip",
            "Topic": "trip-service",
        }


class TestAlarms:
    """Tests for CloudWatch alarms."""

    def test_alarm_count(self, build_dashboard):
        # 2 cluster alarms + 3 per broker + 1 per consumer group
        _, template = build_dashboard(brokers=3, consumer_groups=("trip", "saga"))

        template.resource_count_is("AWS::CloudWatch::Alarm", 2 + 3 * 3 + 2)

    def test_alarm_count_without_consumer_groups(self, build_dashboard):
        _, template = build_dashboard(brokers=2)

        template.resource_count_is("AWS::CloudWatch::Alarm", 2 + 3 * 2)

    def test_active_controller_alarm(self, build_dashboard):
        _, template = build_dashboard()

        template.has_resource_properties(
            "AWS::CloudWatch::Alarm",
            {
                "AlarmName": "AppDevKafkaActiveControllerCount",
                "MetricName": "ActiveControllerCount",
                "Namespace": "AWS/Kafka",
                "Statistic": "Sum",
                "Period": 60,
                "Threshold": 1,
                "EvaluationPeriods": 3,
                "ComparisonOperator": "LessThanThreshold",
                "Dimensions": [{"Name": "Cluster Name", "Value": "appdev"}],
            },
        )

    def test_offline_partitions_alarm(self, build_dashboard):
        _, template = build_dashboard()

        template.has_resource_properties(
            "AWS::CloudWatch::Alarm",
            {
                "AlarmName": "AppDevKafkaOfflinePartitionsCount",
                "Threshold": 0,
                "ComparisonOperator": "GreaterThanThreshold",
            },
        )

    def test_per_broker_alarms(self, build_dashboard):
        _, template = build_dashboard(brokers=2)

        template.has_resource_properties(
            "AWS::CloudWatch::Alarm",
            {
                "AlarmName": "AppDevKafkaUnderReplicatedPartitions2",
                "MetricName": "UnderReplicatedPartitions",
                "Threshold": 0,
                "ComparisonOperator": "GreaterThanThreshold",
                "Dimensions": Match.array_with([{"Name": "Broker ID", "Value": "2"}]),
            },
        )
        template.has_resource_properties(
            "AWS::CloudWatch::Alarm",
            {
                "AlarmName": "AppDevKafkaCpuUser1",
                "MetricName": "CpuUser",
                "Statistic": "Average",
                "Threshold": 60,
                "ComparisonOperator": "GreaterThanThreshold",
            },
        )
        template.has_resource_properties(
            "AWS::CloudWatch::Alarm",
            {
                "AlarmName": "AppDevKafkaDataLogsDiskUsed2",
                "MetricName": "KafkaDataLogsDiskUsed",
                "Threshold": 85,
                "ComparisonOperator": "GreaterThanOrEqualToThreshold",
            },
        )

    def test_max_offset_lag_alarm(self, build_dashboard):
        _, template = build_dashboard(consumer_groups=("trip",))

        template.has_resource_properties(
            "AWS::CloudWatch::Alarm",
            {
                "AlarmName": "AppDevKafkaMaxOffsetLag-trip",
                "MetricName": "MaxOffsetLag",
                "Statistic": "Maximum",
                "Threshold": 100,
                "ComparisonOperator": "GreaterThanOrEqualToThreshold",
                "Dimensions": Match.array_with(
                    [{"Name": "Topic", "Value": "trip-service"}]
                ),
            },
        )

    def test_alarms_notify_topic(self, build_dashboard):
        dashboard, template = build_dashboard()

        alarms = template.find_resources("AWS::CloudWatch::Alarm")
        topic_id = template.find_resources("AWS::SNS::Topic").popitem()[0]
        for alarm in alarms.values():
            assert alarm["Properties"]["AlarmActions"] == [{"Ref": topic_id}]
        assert len(alarms) == len(dashboard.alarms)


class TestDashboard:
    """Tests for the CloudWatch dashboard."""

    def test_dashboard_named_after_namespace(self, build_dashboard):
        _, template = build_dashboard()

        template.resource_count_is("AWS::CloudWatch::Dashboard", 1)
        template.has_resource_properties(
            "AWS::CloudWatch::Dashboard",
            {"DashboardName": "AppDevKafkaDashboard"},
        )

    def test_dashboard_widgets(self, build_dashboard):
        _, template = build_dashboard(consumer_groups=("trip",))
        body = json.dumps(template.find_resources("AWS::CloudWatch::Dashboard"))

        for title in (
            "ActiveControllerCount",
            "OfflinePartitionsCount",
            "UnderReplicatedPartitions",
            "CPU User",
            "Disk Used",
            "MaxOffsetLag",
            "Alarm Status",
        ):
            assert title in body

    def test_lag_widget_omitted_without_consumer_groups(self, build_dashboard):
        _, template = build_dashboard()
        body = json.dumps(template.find_resources("AWS::CloudWatch::Dashboard"))

        assert "MaxOffsetLag" not in body
