"""Secret resolution for GitHub access tokens.

Each comma-separated entry of GITHUB_ACCESS_TOKENS is either a literal token
or a reference into a cloud secret store. A referenced secret may itself hold
several comma-separated tokens, so one secret can feed the whole pool.
"""

from __future__ import annotations

import json
import logging
import os

import requests

from scripts.keysync.errors import ConfigError

logger = logging.getLogger("keysync.secrets")

_AWS_PREFIX = "aws-secret://"
_GCP_PREFIX = "gcp-secret://"
_METADATA_PROJECT_URL = (
    "http://metadata.google.internal/computeMetadata/v1/project/project-id"
)


def _split(raw: str) -> list[str]:
    return [s.strip() for s in raw.split(",") if s.strip()]


def resolve_token_list(raw: str) -> list[str]:
    """Expand a comma-separated token setting into a flat list of tokens.

    Duplicates are dropped, first occurrence wins. A secret that cannot be
    read raises ConfigError.
    """
    tokens: list[str] = []
    for entry in _split(raw):
        try:
            value = resolve_secret(entry)
        except ConfigError:
            raise
        except Exception as exc:
            raise ConfigError(
                f"Cannot resolve GitHub token secret [{entry}]: {exc}"
            ) from exc
        for token in _split(value):
            if token not in tokens:
                tokens.append(token)
    return tokens


def resolve_secret(value: str) -> str:
    """Resolve a secret reference to its plaintext value.

    Supported formats:
      - "aws-secret://secret-name"         -> AWS Secrets Manager
      - "aws-secret://secret-name#key"     -> AWS Secrets Manager (JSON key,
                                              string or array of strings)
      - "gcp-secret://projects/P/secrets/NAME/versions/V"
                                           -> GCP Secret Manager, full name
      - "gcp-secret://NAME"                -> GCP Secret Manager, latest
                                              version in GCP_PROJECT_ID or
                                              the metadata server's project
      - anything else                      -> returned as-is
    """
    if value.startswith(_AWS_PREFIX):
        return _resolve_aws_secret(value[len(_AWS_PREFIX):])
    if value.startswith(_GCP_PREFIX):
        return _resolve_gcp_secret(value[len(_GCP_PREFIX):])
    return value


def _resolve_aws_secret(ref: str) -> str:
    import boto3

    secret_name, _, json_key = ref.partition("#")
    client = boto3.client(
        "secretsmanager", region_name=os.environ.get("AWS_REGION", "us-east-1")
    )
    secret_string = client.get_secret_value(SecretId=secret_name)["SecretString"]
    logger.info("Resolved GitHub token secret from AWS Secrets Manager")

    if not json_key:
        return secret_string
    value = json.loads(secret_string)[json_key]
    # A JSON array of tokens is accepted as well as a plain string.
    if isinstance(value, list):
        return ",".join(str(v) for v in value)
    return str(value)


def _resolve_gcp_secret(ref: str) -> str:
    from google.cloud import secretmanager

    if ref.startswith("projects/"):
        name = ref
    else:
        project = os.environ.get("GCP_PROJECT_ID", "") or _gcp_project_from_metadata()
        name = f"projects/{project}/secrets/{ref}/versions/latest"

    client = secretmanager.SecretManagerServiceClient()
    response = client.access_secret_version(request={"name": name})
    logger.info("Resolved GitHub token secret from GCP Secret Manager")
    return response.payload.data.decode("UTF-8")


def _gcp_project_from_metadata() -> str:
    """Ask the GCE/GKE metadata server which project we run in."""
    try:
        resp = requests.get(
            _METADATA_PROJECT_URL,
            headers={"Metadata-Flavor": "Google"},
            timeout=2,
        )
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise ConfigError(
            "Cannot determine GCP project ID. Set GCP_PROJECT_ID env var."
        ) from exc
    return resp.text
