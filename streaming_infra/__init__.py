"""AWS CDK definitions for a VPC and a managed Kafka (MSK) cluster."""

__version__ = "0.1.0"
