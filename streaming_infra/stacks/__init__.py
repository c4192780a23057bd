"""CDK Stacks for the streaming infrastructure."""

from .msk_dashboard import MskDashboard
from .msk_stack import MskStack
from .validation import add_validation_aspects
from .vpc_stack import VpcStack

__all__ = [
    "MskDashboard",
    "MskStack",
    "VpcStack",
    "add_validation_aspects",
]
