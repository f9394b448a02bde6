"""punchlist_shared.aws_clients — Lazy-singleton AWS service clients.

The Secrets Manager client is only constructed when the service role key
has to be resolved from a secret, so cold starts that read the key from the
environment never pay the boto3 construction cost.
"""

from __future__ import annotations

import os
from typing import Optional

import boto3
from botocore.config import Config

SECRETS_REGION: str = os.environ.get("SECRETS_REGION", os.environ.get("AWS_REGION", "us-east-1"))

_secretsmanager = None


def _get_secretsmanager(region: Optional[str] = None):
    """Get (or create) the Secrets Manager client singleton."""
    global _secretsmanager
    if _secretsmanager is None:
        _secretsmanager = boto3.client(
            "secretsmanager",
            region_name=region or SECRETS_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _secretsmanager
