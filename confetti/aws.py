"""boto3 session and client construction from a confetti creds map."""

from __future__ import annotations

import os
from typing import Dict, Optional

import boto3
from botocore.config import Config
from dotenv import load_dotenv

from .errors import MissingOptionError

load_dotenv()

# CloudFront and the Route53 console links assume us-east-1
DEFAULT_REGION = "us-east-1"

_RETRY_CONFIG = Config(retries={"max_attempts": 10, "mode": "standard"})


ENV_KEYS = {
    "access_key": "AWS_ACCESS_KEY_ID",
    "secret_key": "AWS_SECRET_ACCESS_KEY",
    "session_token": "AWS_SESSION_TOKEN",
}


def resolve_creds(creds: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Return creds from the task options, filling missing keys from the AWS env vars.

    Raises MissingOptionError when neither provides an access/secret key pair.
    """
    creds = {k.replace("-", "_"): v for k, v in (creds or {}).items() if v}
    # an env session token only belongs to the env key pair
    key_from_env = "access_key" not in creds
    for key, var in ENV_KEYS.items():
        if key == "session_token" and not key_from_env:
            continue
        if not creds.get(key) and os.getenv(var):
            creds[key] = os.getenv(var)
    if not creds.get("access_key") or not creds.get("secret_key"):
        raise MissingOptionError("Credentials are required!")
    return creds


def session(creds: Dict[str, str]) -> boto3.session.Session:
    return boto3.session.Session(
        aws_access_key_id=creds.get("access_key"),
        aws_secret_access_key=creds.get("secret_key"),
        aws_session_token=creds.get("session_token"),
        region_name=creds.get("region", DEFAULT_REGION),
    )


def client(service: str, creds: Dict[str, str]):
    return session(creds).client(service, config=_RETRY_CONFIG)
