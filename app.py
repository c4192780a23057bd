#!/usr/bin/env python3
"""
AWS CDK app entry point for the streaming infrastructure.
"""

from streaming_infra.app import main

main()
